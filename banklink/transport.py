"""
Banklink HTTP Forwarding

Server-to-server delivery of a signed packet to a bank endpoint. Browser
redirects use Packet.html() instead.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit

import requests

from . import config
from .packet import Packet

logger = logging.getLogger(__name__)


def forward(
    packet: Packet,
    destination: str,
    session: Optional[requests.Session] = None,
    timeout: float = config.FORWARD_TIMEOUT,
    encoding: str = config.DEFAULT_ENCODING
) -> requests.Response:
    """
    POST the packet's parameters, form-encoded, to `destination`.

    The forward audit record is written before the request is sent. The
    response's Server header is kept on packet.server_header.

    Raises:
        ValueError: destination is not an http(s) URL
        requests.RequestException: transport failure, left to the caller
    """
    channel = urlsplit(destination).scheme.upper()
    if channel not in ("HTTP", "HTTPS"):
        raise ValueError(f"Unsupported forward channel: {destination}")

    packet.log_forward(channel, destination)

    body = [(p.name.encode(encoding), p.value.encode(encoding)) for p in packet.parameters()]
    http = session or requests.Session()
    try:
        response = http.post(
            destination,
            data=body,
            headers={"Content-Type": f"application/x-www-form-urlencoded; charset={encoding}"},
            timeout=timeout,
        )
    finally:
        if session is None:
            http.close()

    packet.server_header = response.headers.get("Server")
    logger.info("Forwarded packet %s to %s: HTTP %s", packet.packet_id, destination, response.status_code)
    return response
