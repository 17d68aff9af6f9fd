#!/usr/bin/env python3
"""
Banklink Example - Payment Request and Bank Answer

This example builds an IPizza-style payment request, renders it as an
auto-submitting form, simulates the bank's signed answer and verifies
it, including a replayed answer and a tampered one.

Run with: python examples/ipizza_payment_example.py
"""

import logging
from datetime import datetime, timezone

from banklink import (
    HmacSha256Algorithm,
    InMemoryNonceManager,
    PacketDescriptor,
    PacketFactory,
    generate_hmac_secret,
    length_prefixed,
)
from banklink.logging_config import configure_logging
from banklink.verifiers import DATETIME_FORMAT

PAYMENT_FIELDS = (
    "VK_SERVICE", "VK_VERSION", "VK_SND_ID", "VK_STAMP", "VK_AMOUNT", "VK_CURR",
    "VK_REF", "VK_MSG", "VK_RETURN", "VK_DATETIME", "VK_NONCE",
)

ANSWER_FIELDS = (
    "VK_SERVICE", "VK_VERSION", "VK_SND_ID", "VK_REC_ID", "VK_STAMP", "VK_T_NO",
    "VK_AMOUNT", "VK_CURR", "VK_REF", "VK_MSG", "VK_DATETIME", "VK_NONCE", "VK_ENCODING",
)


def build_factory(secret: str, nonces: InMemoryNonceManager) -> PacketFactory:
    algorithm = HmacSha256Algorithm(secret, canonicalizer=length_prefixed)
    return PacketFactory([
        PacketDescriptor(service="1012", algorithm=algorithm, fields=PAYMENT_FIELDS,
                         nonce_manager=nonces, verifiers=()),
        PacketDescriptor(service="1111", algorithm=algorithm, fields=ANSWER_FIELDS,
                         nonce_manager=nonces, log_level=logging.INFO),
    ])


def simulate_bank_answer(factory: PacketFactory, request: dict) -> dict:
    """
    Simulate the bank confirming the payment.

    In production the bank signs with its own key and posts the answer
    to VK_RETURN; here both sides share one secret.
    """
    answer = factory.create("1111")
    values = {
        "VK_SERVICE": "1111",
        "VK_VERSION": "008",
        "VK_SND_ID": "BANK",
        "VK_REC_ID": request["VK_SND_ID"],
        "VK_STAMP": request["VK_STAMP"],
        "VK_T_NO": "4711",
        "VK_AMOUNT": request["VK_AMOUNT"],
        "VK_CURR": request["VK_CURR"],
        "VK_REF": request["VK_REF"],
        "VK_MSG": request["VK_MSG"],
        "VK_DATETIME": datetime.now(timezone.utc).strftime(DATETIME_FORMAT),
        "VK_NONCE": request["VK_NONCE"],
        "VK_ENCODING": "UTF-8",
    }
    for name, value in values.items():
        answer.set_parameter(name, value)
    answer.sign()
    return answer.as_dict()


def main():
    configure_logging("INFO", json_format=False)

    print("=" * 70)
    print("Banklink Payment - Example")
    print("=" * 70)

    nonces = InMemoryNonceManager(ttl_seconds=900)
    factory = build_factory(generate_hmac_secret(), nonces)

    # =========================================================================
    # STEP 1: Build and sign the payment request
    # =========================================================================

    print("\n[STEP 1] Signing payment request...")

    request = factory.create("1012")
    request.set_parameter("VK_SERVICE", "1012")
    request.set_parameter("VK_VERSION", "008")
    request.set_parameter("VK_SND_ID", "SHOP")
    request.set_parameter("VK_STAMP", "12345")
    request.set_parameter("VK_AMOUNT", "150.00")
    request.set_parameter("VK_CURR", "EUR")
    request.set_parameter("VK_REF", "1234561")
    request.set_parameter("VK_MSG", "Tellimus 12345 - Käsitöö")
    request.set_parameter("VK_RETURN", "https://shop.example/banklink/1111/return")
    request.set_parameter("VK_DATETIME", datetime.now(timezone.utc).strftime(DATETIME_FORMAT))
    request.set_parameter("VK_NONCE", request.generate_nonce())

    mac = request.sign()
    print(f"  MAC: {mac}")
    print("\n  Form fields:")
    print(request.html())

    # =========================================================================
    # STEP 2: Bank answers
    # =========================================================================

    print("[STEP 2] Verifying bank answer...")

    callback = simulate_bank_answer(factory, request.as_dict())
    answer = factory.from_fields("1111", callback)
    outcome = answer.evaluate()
    print(f"  Verified: {outcome.verified}")

    # =========================================================================
    # STEP 3: Same answer replayed
    # =========================================================================

    print("\n[STEP 3] Replaying the same answer...")

    replay = factory.from_fields("1111", callback).evaluate()
    print(f"  Verified: {replay.verified}")
    print(f"  Failed verifiers: {replay.failed_verifiers()}")

    # =========================================================================
    # STEP 4: Tampered amount
    # =========================================================================

    print("\n[STEP 4] Tampering with the amount...")

    tampered = dict(callback, VK_AMOUNT="1.50")
    outcome = factory.from_fields("1111", tampered).evaluate()
    print(f"  MAC matched: {outcome.mac_matched}")
    print(f"  Verified: {outcome.verified}")

    print("\n" + "=" * 70)
    print("Example Complete")
    print("=" * 70)


if __name__ == "__main__":
    main()
