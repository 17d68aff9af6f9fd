"""
Banklink Packet

A Packet is one signed or verifiable unit of protocol data exchanged with
a bank gateway. It owns one ParameterStore, one SigningAlgorithm and
optionally one NonceManager.

Lifecycle:
    outbound:  set parameters -> sign() -> html() / json() / forward
    inbound:   load(fields) -> verify()

verify() contract:
    1. No MAC field                -> False
    2. MAC does not match          -> False, verifier chain NOT consulted
    3. MAC matches                 -> EVERY verifier runs, results ANDed
    4. Structural fault anywhere   -> VerificationFailure

A Packet is mutable and not synchronized; it belongs to one request.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from . import config
from .algorithms import SigningAlgorithm
from .exceptions import SigningFailure, VerificationFailure
from .logging_config import audit_log
from .nonce import NonceManager
from .parameters import Parameter, ParameterRule, ParameterStore
from .rendering import render_html, render_json
from .verifiers import PacketVerifier, VerifierEvaluation

logger = logging.getLogger(__name__)

InboundFields = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


@dataclass
class PacketVerification:
    """Outcome of one verification attempt."""
    packet_id: str
    mac_present: bool
    mac_matched: bool
    evaluations: List[VerifierEvaluation] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.mac_matched and all(e.passed() for e in self.evaluations)

    def failed_verifiers(self) -> List[str]:
        return [e.verifier_id for e in self.evaluations if not e.passed()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "packet_id": self.packet_id,
            "verified": self.verified,
            "mac_present": self.mac_present,
            "mac_matched": self.mac_matched,
            "evaluations": [e.to_dict() for e in self.evaluations],
        }


class Packet:
    """
    Signable / verifiable banklink packet.

    Args:
        packet_id: Identifier used in logs (e.g. service code "1012")
        algorithm: Signing algorithm for this exchange
        nonce_manager: Replay protection, or None
        mac_name: Parameter that carries the MAC
        verifiers: Chain run by verify() after a MAC match; None means
            config.default_verifiers(), an empty sequence disables it
        fields: Fields required before signing; also the order in which
            inbound fields are loaded
        log_level: Severity of this packet's audit records
        rules: Value format rules for the parameter store
    """

    def __init__(
        self,
        packet_id: str,
        algorithm: SigningAlgorithm,
        nonce_manager: Optional[NonceManager] = None,
        mac_name: str = config.MAC_FIELD,
        verifiers: Optional[Sequence[PacketVerifier]] = None,
        fields: Sequence[str] = (),
        log_level: int = logging.DEBUG,
        rules: Optional[Sequence[ParameterRule]] = None
    ):
        self._packet_id = packet_id
        self.algorithm = algorithm
        self.nonce_manager = nonce_manager
        self.mac_name = mac_name
        self.verifiers: Tuple[PacketVerifier, ...] = (
            config.default_verifiers() if verifiers is None else tuple(verifiers)
        )
        self.fields: Tuple[str, ...] = tuple(fields)
        self.log_level = log_level
        self.server_header: Optional[str] = None
        self.re_encoding: Optional[str] = None
        self._store = ParameterStore(rules)

    @property
    def packet_id(self) -> str:
        return self._packet_id

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def init(self):
        """Clear all parameters and the re-encoding hint."""
        self._store.reset()
        self.re_encoding = None

    def load(self, inbound: InboundFields, re_encoding: Optional[str] = None):
        """
        Populate the packet from inbound fields (e.g. a bank callback).

        With declared fields, only those plus the MAC field are kept, in
        declared order; anything else is dropped.

        Raises:
            InvalidParameter: a value cannot be re-decoded or is malformed
        """
        self.init()
        pairs = list(inbound.items()) if isinstance(inbound, Mapping) else list(inbound)
        only = None
        if self.fields:
            only = list(self.fields)
            if self.mac_name not in only:
                only.append(self.mac_name)
            dropped = sorted({name for name, _ in pairs} - set(only))
            if dropped:
                logger.debug("Packet %s ignoring undeclared fields: %s", self._packet_id, dropped)
        self._store.load(pairs, charset=re_encoding, only=only)
        self.re_encoding = re_encoding

    def parameters(self) -> List[Parameter]:
        return self._store.values()

    def get_parameter_value(self, name: str) -> Optional[str]:
        return self._store.get(name)

    def set_parameter(self, name: str, value: str):
        """Raises InvalidParameter on a malformed name or value."""
        self._store.set_parameter(name, value)

    def has_parameter(self, name: str) -> bool:
        return self._store.contains(name)

    def as_dict(self) -> Dict[str, str]:
        return self._store.as_dict()

    def _signed_parameters(self) -> List[Parameter]:
        return [p for p in self._store.values() if p.name != self.mac_name]

    # ------------------------------------------------------------------
    # Sign / verify
    # ------------------------------------------------------------------

    def sign(self) -> str:
        """
        Compute the MAC over all parameters except the MAC field and store it.

        Returns:
            The MAC string

        Raises:
            SigningFailure: required fields missing or the algorithm failed;
                the store is left untouched
        """
        missing = [name for name in self.fields if not self._store.contains(name)]
        if missing:
            raise SigningFailure(
                f"Packet {self._packet_id} missing required fields: {', '.join(missing)}",
                packet_id=self._packet_id,
                details={"missing": missing}
            )

        values = self._signed_parameters()
        try:
            mac = self.algorithm.sign(values)
            canonical = self.algorithm.canonical_string(values)
        except Exception as e:
            raise SigningFailure(
                f"Packet {self._packet_id} signing failed: {e}",
                packet_id=self._packet_id,
                details={"cause": type(e).__name__}
            ) from e

        audit_log.packet_signed(self._packet_id, values, canonical, mac, level=self.log_level)
        self._store.put(self.mac_name, mac)
        return mac

    def verify(self, verifiers: Optional[Sequence[PacketVerifier]] = None) -> bool:
        """
        Check the MAC and, if it matches, run the verifier chain.

        Args:
            verifiers: Chain to use instead of the packet's own; an empty
                sequence checks the MAC only

        Returns:
            True only if the MAC matched and every verifier passed
        """
        return self.evaluate(verifiers).verified

    def evaluate(self, verifiers: Optional[Sequence[PacketVerifier]] = None) -> PacketVerification:
        """verify() with per-verifier detail."""
        chain = self.verifiers if verifiers is None else tuple(verifiers)
        try:
            mac = self._store.get(self.mac_name)
            signed = self._signed_parameters()
            matched = bool(mac) and self.algorithm.verify(signed, mac)

            outcome = PacketVerification(
                packet_id=self._packet_id,
                mac_present=bool(mac),
                mac_matched=matched,
            )
            if matched:
                # every verifier runs; no short-circuit
                outcome.evaluations = [verifier.evaluate(self) for verifier in chain]

            canonical = self.algorithm.canonical_string(signed)
        except VerificationFailure:
            raise
        except Exception as e:
            raise VerificationFailure(
                f"Packet {self._packet_id} verify failed. Cause: {e}",
                packet_id=self._packet_id,
                details={"cause": type(e).__name__}
            ) from e

        audit_log.packet_verified(
            self._packet_id, self.parameters(), canonical, outcome.verified,
            recoded_from=self.re_encoding, level=self.log_level
        )
        if outcome.mac_matched and not outcome.verified:
            logger.info("Packet %s rejected by verifiers: %s", self._packet_id, outcome.failed_verifiers())
        return outcome

    # ------------------------------------------------------------------
    # Nonces
    # ------------------------------------------------------------------

    def generate_nonce(self) -> Optional[str]:
        if self.nonce_manager is not None:
            return self.nonce_manager.issue()
        return None

    def verify_nonce(self, nonce: str) -> bool:
        if self.nonce_manager is not None:
            return self.nonce_manager.consume(nonce)
        return False

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def log_forward(self, channel: str, destination: str):
        """Record that the packet is being sent to `destination` over `channel`."""
        values = self.parameters()
        audit_log.packet_forwarded(
            self._packet_id, values, self.algorithm.canonical_string(self._signed_parameters()),
            channel, destination, level=self.log_level
        )

    def html(self) -> str:
        return render_html(self.parameters())

    def json(self) -> str:
        return render_json(self.parameters())

    def __repr__(self) -> str:
        return f"Packet{self._packet_id} {self._store.as_dict()!r}"
