"""
Banklink HTTP callback surface.

Banks return the customer (and, for some services, call the merchant
server directly) with the answer packet as form fields. This router turns
that request into a verified Packet.

Values are read byte-preserving as ISO-8859-1 and then re-decoded with
the charset the bank declared in VK_ENCODING, falling back to the
request's Content-Type charset and finally config.DEFAULT_ENCODING.
"""

import logging
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from . import config
from .descriptors import PacketFactory
from .exceptions import InvalidParameter, UnknownPacketService, VerificationFailure
from .logging_config import set_request_id
from .models import VerificationResponse
from .packet import Packet, PacketVerification
from .parameters import LATIN_1

logger = logging.getLogger(__name__)


def _content_type_charset(request: Request) -> Optional[str]:
    content_type = request.headers.get("content-type", "")
    for part in content_type.split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip('"')
    return None


async def read_fields(request: Request) -> Tuple[List[Tuple[str, str]], str]:
    """
    Extract (name, value) pairs and the declared charset from a request.

    POST bodies and query strings are both accepted; body fields win.
    """
    raw = request.url.query
    if request.method == "POST":
        body = await request.body()
        if body:
            raw = body.decode(LATIN_1)
    pairs = parse_qsl(raw, keep_blank_values=True, encoding=LATIN_1)

    declared = dict(pairs).get(config.ENCODING_FIELD)
    charset = declared or _content_type_charset(request) or config.DEFAULT_ENCODING
    return pairs, charset


def verify_callback(factory: PacketFactory, service: str, pairs: List[Tuple[str, str]],
                    charset: str) -> Tuple[Packet, PacketVerification]:
    """Build and verify the answer packet. Blocking: may wait on the nonce store."""
    packet = factory.from_fields(service, pairs, re_encoding=charset)
    return packet, packet.evaluate()


def create_router(factory: PacketFactory) -> APIRouter:
    router = APIRouter()

    @router.api_route("/{service}/return", methods=["GET", "POST"], response_model=VerificationResponse)
    async def packet_return(service: str, request: Request):
        set_request_id(request.headers.get("x-request-id"))
        pairs, charset = await read_fields(request)

        try:
            packet, outcome = await run_in_threadpool(verify_callback, factory, service, pairs, charset)
        except UnknownPacketService as e:
            raise HTTPException(404, e.to_dict())
        except InvalidParameter as e:
            logger.warning("Rejected malformed %s callback: %s", service, e.message)
            raise HTTPException(400, e.to_dict())
        except VerificationFailure as e:
            logger.error("Verification of %s callback failed: %s", service, e.message)
            raise HTTPException(500, e.to_dict())

        return VerificationResponse(
            service=service,
            verified=outcome.verified,
            parameters=packet.as_dict(),
            failed_verifiers=outcome.failed_verifiers(),
        )

    return router


def create_app(factory: PacketFactory, prefix: str = "/banklink") -> FastAPI:
    app = FastAPI(title="Banklink callbacks")
    app.include_router(create_router(factory), prefix=prefix)
    return app
