"""
Banklink Packet Core

Builds, signs and verifies the fixed-field packets exchanged between a
merchant and a bank's payment-initiation gateway (IPizza-style banklink).

Usage:
    from banklink import (
        HmacSha256Algorithm,
        InMemoryNonceManager,
        PacketDescriptor,
        PacketFactory,
    )

    nonces = InMemoryNonceManager(ttl_seconds=900)
    factory = PacketFactory([
        PacketDescriptor(
            service="4012",
            fields=("VK_SERVICE", "VK_VERSION", "VK_SND_ID", "VK_NONCE", "VK_DATETIME"),
            algorithm=HmacSha256Algorithm(secret),
            nonce_manager=nonces,
        ),
    ])

    # Outbound
    packet = factory.create("4012")
    packet.set_parameter("VK_SERVICE", "4012")
    ...
    packet.set_parameter("VK_NONCE", packet.generate_nonce())
    packet.sign()
    form = packet.html()

    # Inbound
    answer = factory.from_fields("4012", request_fields, re_encoding="UTF-8")
    if answer.verify():
        ...
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Errors
from .exceptions import (
    BanklinkError,
    InvalidParameter,
    AlgorithmError,
    SigningFailure,
    VerificationFailure,
    UnknownPacketService,
)

# Parameters
from .parameters import (
    Parameter,
    ParameterStore,
    ParameterRule,
    DEFAULT_RULES,
    no_control_characters,
    max_length,
)

# Canonicalization
from .canonicalization import query_string, length_prefixed

# Algorithms
from .algorithms import (
    SigningAlgorithm,
    HmacSha256Algorithm,
    Ed25519Algorithm,
    generate_hmac_secret,
    generate_ed25519_keypair,
)

# Nonces
from .nonce import (
    NonceManager,
    DisabledNonceManager,
    InMemoryNonceManager,
    RedisNonceManager,
)

# Verifiers
from .verifiers import (
    PacketVerifier,
    VerifierEvaluation,
    VerifierResult,
    FailureCode,
    TimestampFreshnessVerifier,
    NonceVerifier,
    DateConsistencyVerifier,
    PredicateVerifier,
)

# Packets
from .packet import Packet, PacketVerification
from .descriptors import PacketDescriptor, PacketFactory
from .rendering import render_html, render_json
from .config import default_verifiers


__all__ = [
    "__version__",

    # Errors
    "BanklinkError",
    "InvalidParameter",
    "AlgorithmError",
    "SigningFailure",
    "VerificationFailure",
    "UnknownPacketService",

    # Parameters
    "Parameter",
    "ParameterStore",
    "ParameterRule",
    "DEFAULT_RULES",
    "no_control_characters",
    "max_length",

    # Canonicalization
    "query_string",
    "length_prefixed",

    # Algorithms
    "SigningAlgorithm",
    "HmacSha256Algorithm",
    "Ed25519Algorithm",
    "generate_hmac_secret",
    "generate_ed25519_keypair",

    # Nonces
    "NonceManager",
    "DisabledNonceManager",
    "InMemoryNonceManager",
    "RedisNonceManager",

    # Verifiers
    "PacketVerifier",
    "VerifierEvaluation",
    "VerifierResult",
    "FailureCode",
    "TimestampFreshnessVerifier",
    "NonceVerifier",
    "DateConsistencyVerifier",
    "PredicateVerifier",

    # Packets
    "Packet",
    "PacketVerification",
    "PacketDescriptor",
    "PacketFactory",
    "render_html",
    "render_json",
    "default_verifiers",
]
