"""
Banklink Post-MAC Verifiers

Verifiers inspect a packet whose MAC already matched and approve or
reject it. Packet.verify() runs every verifier in the chain and ANDs the
results; it never stops at the first rejection, because the nonce
verifier has a side effect (consumption) that must happen exactly once
per verification attempt.

Design principles:
- Deterministic for a given packet, clock and nonce state
- Fail-closed: missing or malformed input rejects
- evaluate() returns PASS or FAIL and never raises for bad packet data
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

if TYPE_CHECKING:
    from .packet import Packet


DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
DATE_FORMAT = "%d.%m.%Y"
TIME_FORMAT = "%H:%M:%S"


class VerifierResult(str, Enum):
    """Verifier evaluation result."""
    PASS = "PASS"
    FAIL = "FAIL"


class FailureCode(str, Enum):
    """Why a verifier rejected a packet."""
    MISSING = "MISSING"
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"
    MISMATCH = "MISMATCH"
    REPLAY = "REPLAY"
    UNAUTHORIZED = "UNAUTHORIZED"


@dataclass
class VerifierEvaluation:
    """Result of running a single verifier."""
    verifier_id: str
    result: VerifierResult
    failure_code: Optional[FailureCode] = None
    required: Optional[str] = None
    observed: Optional[str] = None

    def passed(self) -> bool:
        return self.result == VerifierResult.PASS

    def to_dict(self) -> Dict[str, Any]:
        d = {"verifier_id": self.verifier_id, "result": self.result.value}
        if self.failure_code:
            d["failure_code"] = self.failure_code.value
        if self.required:
            d["required"] = self.required
        if self.observed:
            d["observed"] = self.observed
        return d


def parse_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp with offset, e.g. 2015-03-13T12:54:03+0200."""
    parsed = datetime.strptime(value, DATETIME_FORMAT)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp has no offset: {value}")
    return parsed


def parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def parse_time(value: str) -> time:
    return datetime.strptime(value, TIME_FORMAT).time()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PacketVerifier(ABC):
    """Abstract base class for all verifiers."""

    verifier_id = "verifier"

    @abstractmethod
    def evaluate(self, packet: "Packet") -> VerifierEvaluation:
        """Evaluate the packet. Must return PASS or FAIL, never raise on bad data."""
        pass

    def verify(self, packet: "Packet") -> bool:
        return self.evaluate(packet).passed()

    def _pass(self) -> VerifierEvaluation:
        return VerifierEvaluation(verifier_id=self.verifier_id, result=VerifierResult.PASS)

    def _fail(
        self,
        code: FailureCode,
        required: str = None,
        observed: str = None
    ) -> VerifierEvaluation:
        return VerifierEvaluation(
            verifier_id=self.verifier_id,
            result=VerifierResult.FAIL,
            failure_code=code,
            required=required,
            observed=observed
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.verifier_id!r})"


class TimestampFreshnessVerifier(PacketVerifier):
    """
    Rejects packets whose timestamp is missing, malformed, or further
    than max_skew_seconds from now, in either direction.

    The combined datetime field takes priority. If it is absent the split
    date and time fields are used, interpreted in `tz`. A timestamp
    exactly max_skew_seconds away is still fresh.
    """

    verifier_id = "timestamp_freshness"

    def __init__(
        self,
        max_skew_seconds: int = 300,
        datetime_field: str = "VK_DATETIME",
        date_field: str = "VK_DATE",
        time_field: str = "VK_TIME",
        tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = _utc_now
    ):
        self.max_skew = timedelta(seconds=max_skew_seconds)
        self.datetime_field = datetime_field
        self.date_field = date_field
        self.time_field = time_field
        self.tz = tz
        self.clock = clock

    def packet_timestamp(self, packet: "Packet") -> Optional[datetime]:
        """
        Extract the packet's timestamp.

        Returns:
            Aware datetime, or None if no timestamp fields are present

        Raises:
            ValueError: a present timestamp field is malformed
        """
        combined = packet.get_parameter_value(self.datetime_field)
        if combined:
            return parse_datetime(combined)

        date_value = packet.get_parameter_value(self.date_field)
        time_value = packet.get_parameter_value(self.time_field)
        if date_value and time_value:
            return datetime.combine(parse_date(date_value), parse_time(time_value)).replace(tzinfo=self.tz)
        return None

    def evaluate(self, packet: "Packet") -> VerifierEvaluation:
        try:
            stamp = self.packet_timestamp(packet)
        except ValueError as e:
            return self._fail(FailureCode.INVALID, "well-formed timestamp", str(e))

        if stamp is None:
            return self._fail(
                FailureCode.MISSING,
                f"{self.datetime_field} or {self.date_field}+{self.time_field}",
                "none"
            )

        now = self.clock()
        skew = abs(now - stamp)
        if skew > self.max_skew:
            return self._fail(
                FailureCode.EXPIRED,
                f"skew <= {int(self.max_skew.total_seconds())}s",
                f"skew = {skew.total_seconds():.3f}s"
            )
        return self._pass()


class NonceVerifier(PacketVerifier):
    """
    Rejects packets without a nonce, with an unknown nonce, or with one
    already consumed. Consumes the nonce on first valid use.
    """

    verifier_id = "nonce"

    def __init__(self, nonce_field: str = "VK_NONCE"):
        self.nonce_field = nonce_field

    def evaluate(self, packet: "Packet") -> VerifierEvaluation:
        nonce = packet.get_parameter_value(self.nonce_field)
        if not nonce:
            return self._fail(FailureCode.MISSING, f"nonce in {self.nonce_field}", "none")

        if packet.nonce_manager is None:
            return self._fail(FailureCode.UNAUTHORIZED, "nonce manager", "not configured")

        if not packet.verify_nonce(nonce):
            return self._fail(FailureCode.REPLAY, "unused issued nonce", f"nonce {nonce} unknown or used")

        return self._pass()


class DateConsistencyVerifier(PacketVerifier):
    """
    Rejects packets whose combined datetime field and split date/time
    fields are both present but disagree.

    Split fields are compared with the combined value's wall clock in its
    own declared offset. Packets carrying only one form pass; freshness
    is checked separately.
    """

    verifier_id = "date_consistency"

    def __init__(
        self,
        datetime_field: str = "VK_DATETIME",
        date_field: str = "VK_DATE",
        time_field: str = "VK_TIME"
    ):
        self.datetime_field = datetime_field
        self.date_field = date_field
        self.time_field = time_field

    def evaluate(self, packet: "Packet") -> VerifierEvaluation:
        combined = packet.get_parameter_value(self.datetime_field)
        date_value = packet.get_parameter_value(self.date_field)
        time_value = packet.get_parameter_value(self.time_field)

        if not combined or not (date_value or time_value):
            return self._pass()

        try:
            stamp = parse_datetime(combined)
            if date_value and parse_date(date_value) != stamp.date():
                return self._fail(
                    FailureCode.MISMATCH,
                    f"{self.date_field} == date of {self.datetime_field}",
                    f"{date_value} != {stamp.strftime(DATE_FORMAT)}"
                )
            if time_value and parse_time(time_value) != stamp.time().replace(microsecond=0):
                return self._fail(
                    FailureCode.MISMATCH,
                    f"{self.time_field} == time of {self.datetime_field}",
                    f"{time_value} != {stamp.strftime(TIME_FORMAT)}"
                )
        except ValueError as e:
            return self._fail(FailureCode.INVALID, "well-formed date fields", str(e))

        return self._pass()


class PredicateVerifier(PacketVerifier):
    """Adapts a plain callable(packet) -> bool into a verifier."""

    def __init__(self, verifier_id: str, predicate: Callable[["Packet"], bool]):
        self.verifier_id = verifier_id
        self.predicate = predicate

    def evaluate(self, packet: "Packet") -> VerifierEvaluation:
        if self.predicate(packet):
            return self._pass()
        return self._fail(FailureCode.UNAUTHORIZED, f"{self.verifier_id} predicate", "false")
