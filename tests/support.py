"""Shared fixtures for the banklink test suite."""

from datetime import datetime, timedelta, timezone

from banklink.algorithms import SigningAlgorithm
from banklink.exceptions import AlgorithmError
from banklink.verifiers import DATETIME_FORMAT, FailureCode, PacketVerifier


class EchoAlgorithm(SigningAlgorithm):
    """Returns "MAC:" + canonical string; verifies by recomputing."""

    name = "ECHO"

    def sign(self, parameters):
        return "MAC:" + self.canonical_string(parameters)

    def verify(self, parameters, mac):
        return mac == self.sign(parameters)


class BrokenAlgorithm(SigningAlgorithm):
    """Fails structurally in both directions."""

    name = "BROKEN"

    def sign(self, parameters):
        raise RuntimeError("HSM offline")

    def verify(self, parameters, mac):
        raise AlgorithmError("Unsupported credential")


class CountingVerifier(PacketVerifier):
    """Records every invocation and returns a fixed answer."""

    def __init__(self, verifier_id="counting", answer=True):
        self.verifier_id = verifier_id
        self.answer = answer
        self.calls = 0

    def evaluate(self, packet):
        self.calls += 1
        return self._pass() if self.answer else self._fail(FailureCode.UNAUTHORIZED, "nothing", "forced failure")


class FixedClock:
    """Callable clock returning a settable aware datetime."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 5, 17, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def stamp(moment=None, offset_seconds=0):
    """Format a VK_DATETIME value, default now."""
    moment = moment or datetime.now(timezone.utc)
    return (moment + timedelta(seconds=offset_seconds)).strftime(DATETIME_FORMAT)


PAYMENT_FIELDS = {
    "VK_SERVICE": "1012",
    "VK_VERSION": "008",
    "VK_SND_ID": "SHOP",
    "VK_STAMP": "12345",
    "VK_AMOUNT": "100.00",
    "VK_CURR": "EUR",
    "VK_REF": "1234561",
    "VK_MSG": "Order 12345",
}
