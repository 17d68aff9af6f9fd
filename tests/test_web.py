import asyncio
import time
from datetime import datetime, timezone
from urllib.parse import urlencode

import httpx
import pytest
from fastapi.testclient import TestClient

from banklink import (
    HmacSha256Algorithm,
    InMemoryNonceManager,
    PacketDescriptor,
    PacketFactory,
    generate_hmac_secret,
)
from banklink.verifiers import DATETIME_FORMAT
from banklink.web import create_app

FIELDS = ("VK_SERVICE", "VK_VERSION", "VK_STAMP", "VK_MSG", "VK_ENCODING")
CHAIN_FIELDS = ("VK_SERVICE", "VK_STAMP", "VK_DATETIME", "VK_NONCE")

algorithm = HmacSha256Algorithm(generate_hmac_secret())
nonces = InMemoryNonceManager()
factory = PacketFactory([
    PacketDescriptor(service="1111", algorithm=algorithm, fields=FIELDS, verifiers=()),
    PacketDescriptor(service="1112", algorithm=algorithm, fields=CHAIN_FIELDS, nonce_manager=nonces),
])
client = TestClient(create_app(factory))

FORM = "application/x-www-form-urlencoded"


def bank_answer(msg="Order 12345", encoding="UTF-8"):
    """Fields as the bank would send them back, signed."""
    packet = factory.create("1111")
    for name, value in (("VK_SERVICE", "1111"), ("VK_VERSION", "008"), ("VK_STAMP", "12345"),
                        ("VK_MSG", msg), ("VK_ENCODING", encoding)):
        packet.set_parameter(name, value)
    packet.sign()
    return packet.as_dict()


def post(fields, wire_encoding="utf-8", content_type=FORM, service="1111", **kwargs):
    body = urlencode(list(fields.items()), encoding=wire_encoding)
    return client.post(f"/banklink/{service}/return", content=body.encode("ascii"),
                       headers={"content-type": content_type}, **kwargs)


def test_verified_post():
    r = post(bank_answer())
    assert r.status_code == 200
    data = r.json()
    assert data["verified"] is True
    assert data["service"] == "1111"
    assert data["failed_verifiers"] == []
    assert list(data["parameters"])[-1] == "VK_MAC"


def test_verified_get():
    query = urlencode(list(bank_answer().items()))
    r = client.get(f"/banklink/1111/return?{query}")
    assert r.status_code == 200
    assert r.json()["verified"] is True


def test_tampered_answer_not_verified():
    fields = bank_answer()
    fields["VK_STAMP"] = "99999"
    r = post(fields)
    assert r.status_code == 200
    assert r.json()["verified"] is False


def test_utf8_values_recoded():
    r = post(bank_answer(msg="Käsi"))
    data = r.json()
    assert data["verified"] is True
    assert data["parameters"]["VK_MSG"] == "Käsi"


def test_latin1_answer():
    r = post(bank_answer(msg="Käsi", encoding="ISO-8859-1"), wire_encoding="iso-8859-1")
    data = r.json()
    assert data["verified"] is True
    assert data["parameters"]["VK_MSG"] == "Käsi"


def test_content_type_charset_fallback():
    fields = bank_answer(msg="Käsi", encoding="")
    r = post(fields, wire_encoding="iso-8859-1", content_type=f"{FORM}; charset=ISO-8859-1")
    assert r.json()["parameters"]["VK_MSG"] == "Käsi"


def test_undeclared_fields_dropped():
    fields = bank_answer()
    fields["VK_EXTRA"] = "ignored"
    data = post(fields).json()
    assert data["verified"] is True
    assert "VK_EXTRA" not in data["parameters"]


def test_unknown_service_404():
    r = post(bank_answer(), service="9999")
    assert r.status_code == 404
    assert r.json()["detail"]["error_code"] == "banklink:factory:unknown_service"


def test_bad_charset_400():
    fields = bank_answer(encoding="NO-SUCH-CHARSET")
    r = post(fields)
    assert r.status_code == 400
    assert r.json()["detail"]["error_code"] == "banklink:parameter:invalid"


@pytest.mark.parametrize("bad", ["\x00", "\x1b[31m"])
def test_control_characters_400(bad):
    fields = bank_answer()
    fields["VK_MSG"] = "x" + bad
    assert post(fields).status_code == 400


class SlowNonceManager(InMemoryNonceManager):
    """Consume waits as a remote nonce store round trip would."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def consume(self, nonce):
        time.sleep(self.delay)
        return super().consume(nonce)


def chain_answer(target_factory=factory):
    """Signed answer for the default-chain service: fresh timestamp and an issued nonce."""
    packet = target_factory.create("1112")
    packet.set_parameter("VK_SERVICE", "1112")
    packet.set_parameter("VK_STAMP", "12345")
    packet.set_parameter("VK_DATETIME", datetime.now(timezone.utc).strftime(DATETIME_FORMAT))
    packet.set_parameter("VK_NONCE", packet.generate_nonce())
    packet.sign()
    return packet.as_dict()


def test_default_chain_rejects_replay():
    fields = chain_answer()

    first = post(fields, service="1112").json()
    assert first["verified"] is True
    assert first["failed_verifiers"] == []

    replay = post(fields, service="1112").json()
    assert replay["verified"] is False
    assert replay["failed_verifiers"] == ["nonce"]


def test_tampered_nonce_skips_chain():
    fields = chain_answer()
    fields["VK_NONCE"] = "forged"
    data = post(fields, service="1112").json()
    # MAC no longer matches, so the chain is not consulted
    assert data["verified"] is False
    assert data["failed_verifiers"] == []


def test_concurrent_callbacks_do_not_block_each_other():
    delay = 1.0
    slow_factory = PacketFactory([
        PacketDescriptor(service="1112", algorithm=algorithm, fields=CHAIN_FIELDS,
                         nonce_manager=SlowNonceManager(delay)),
    ])
    app = create_app(slow_factory)
    answers = [chain_answer(slow_factory) for _ in range(3)]

    async def send_all():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            return await asyncio.gather(*(
                http.get("/banklink/1112/return", params=list(fields.items())) for fields in answers
            ))

    started = time.monotonic()
    responses = asyncio.run(send_all())
    elapsed = time.monotonic() - started

    assert [r.json()["verified"] for r in responses] == [True, True, True]
    assert elapsed < delay * len(answers) - 0.5
