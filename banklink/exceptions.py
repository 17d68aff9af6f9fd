"""
Banklink Exception Hierarchy

Only infrastructural faults use the error channel. A MAC mismatch or a
rejecting verifier is a normal negative result of Packet.verify(), never
an exception.
"""

from typing import Any, Dict, Optional


class BanklinkError(Exception):
    """Base exception for all banklink errors."""

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to an API error response body."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class InvalidParameter(BanklinkError):
    """
    A parameter name or value was rejected at the moment of mutation.

    Examples:
    - Empty or missing parameter name
    - Value containing forbidden control characters
    - Value that cannot be re-decoded with the declared charset

    Always recoverable: fix the input and retry the call.
    """

    def __init__(self, message: str, name: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.name = name
        details = dict(details or {})
        if name is not None:
            details.setdefault("parameter", name)
        super().__init__("banklink:parameter:invalid", message, details)


class AlgorithmError(BanklinkError):
    """
    Structural failure inside a signing algorithm.

    Examples:
    - Malformed or missing credential
    - MAC string that is not valid base64
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("banklink:algorithm:error", message, details)


class SigningFailure(BanklinkError):
    """Packet.sign() failed. The packet is left unsigned."""

    def __init__(self, message: str, packet_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.packet_id = packet_id
        super().__init__("banklink:packet:signing_failed", message, details)


class VerificationFailure(BanklinkError):
    """Packet.verify() hit a structural error (not a negative result)."""

    def __init__(self, message: str, packet_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.packet_id = packet_id
        super().__init__("banklink:packet:verification_failed", message, details)


class UnknownPacketService(BanklinkError):
    """No descriptor is registered for the requested service code."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(
            "banklink:factory:unknown_service",
            f"No packet descriptor registered for service {service}",
            {"service": service}
        )
