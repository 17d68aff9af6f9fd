"""
Banklink Packet Descriptors

Bank- and service-specific packet variants are declared, not subclassed.
A descriptor fixes:
- the ordered field list (checked before signing, load order inbound)
- the audit log severity
- the algorithm, nonce manager and verifier chain wired into the packet

A descriptor never changes how sign() or verify() work.

Usage:
    factory = PacketFactory()
    factory.register(PacketDescriptor(
        service="1012",
        fields=("VK_SERVICE", "VK_VERSION", "VK_SND_ID", "VK_STAMP", "VK_AMOUNT"),
        algorithm=HmacSha256Algorithm(secret),
        verifiers=(),
    ))

    packet = factory.create("1012")
    inbound = factory.from_fields("1111", request_fields, re_encoding="UTF-8")
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from . import config
from .algorithms import SigningAlgorithm
from .exceptions import UnknownPacketService
from .nonce import NonceManager
from .packet import InboundFields, Packet
from .parameters import ParameterRule
from .verifiers import PacketVerifier


@dataclass(frozen=True)
class PacketDescriptor:
    """
    Declarative configuration of one packet variant.

    verifiers=None selects config.default_verifiers(); () disables the
    post-MAC chain for services that carry no timestamp or nonce.
    """
    service: str
    algorithm: SigningAlgorithm
    fields: Tuple[str, ...] = ()
    log_level: int = logging.DEBUG
    nonce_manager: Optional[NonceManager] = None
    verifiers: Optional[Tuple[PacketVerifier, ...]] = None
    mac_name: str = config.MAC_FIELD
    rules: Optional[Tuple[ParameterRule, ...]] = None

    def __post_init__(self):
        # accept lists from callers but store tuples
        object.__setattr__(self, "fields", tuple(self.fields))
        if self.verifiers is not None:
            object.__setattr__(self, "verifiers", tuple(self.verifiers))
        if self.rules is not None:
            object.__setattr__(self, "rules", tuple(self.rules))
        if len(set(self.fields)) != len(self.fields):
            raise ValueError(f"Descriptor {self.service} declares duplicate fields")

    def create_packet(self, packet_id: Optional[str] = None) -> Packet:
        return Packet(
            packet_id or self.service,
            self.algorithm,
            nonce_manager=self.nonce_manager,
            mac_name=self.mac_name,
            verifiers=self.verifiers,
            fields=self.fields,
            log_level=self.log_level,
            rules=self.rules,
        )


class PacketFactory:
    """Registry of descriptors keyed by service code."""

    def __init__(self, descriptors: Sequence[PacketDescriptor] = ()):
        self._descriptors: Dict[str, PacketDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: PacketDescriptor):
        if descriptor.service in self._descriptors:
            raise ValueError(f"Service already registered: {descriptor.service}")
        self._descriptors[descriptor.service] = descriptor

    def descriptor(self, service: str) -> PacketDescriptor:
        try:
            return self._descriptors[service]
        except KeyError:
            raise UnknownPacketService(service) from None

    def services(self) -> List[str]:
        return list(self._descriptors)

    def create(self, service: str, packet_id: Optional[str] = None) -> Packet:
        """New empty packet for `service`."""
        return self.descriptor(service).create_packet(packet_id)

    def from_fields(self, service: str, inbound: InboundFields, re_encoding: Optional[str] = None) -> Packet:
        """
        Packet for `service` loaded from inbound fields.

        Raises:
            UnknownPacketService: no descriptor for `service`
            InvalidParameter: inbound data is malformed
        """
        packet = self.create(service)
        packet.load(inbound, re_encoding=re_encoding)
        return packet
