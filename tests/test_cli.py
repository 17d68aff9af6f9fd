import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from banklink.cli import main
from banklink.verifiers import DATETIME_FORMAT


FIELDS = {"VK_SERVICE": "1012", "VK_VERSION": "008", "VK_AMOUNT": "100.00"}


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fields_file(tmp_path):
    path = tmp_path / "fields.json"
    path.write_text(json.dumps(FIELDS), encoding="utf-8")
    return path


def keygen(capsys, algorithm):
    assert main(["keygen", "--algorithm", algorithm]) == 0
    return json.loads(capsys.readouterr().out)


def test_keygen_hmac(capsys):
    keys = keygen(capsys, "hmac")
    assert keys["algorithm"] == "HMAC-SHA256"
    assert keys["secret_b64"]


def test_canonical(capsys, fields_file):
    assert main(["canonical", "-f", str(fields_file)]) == 0
    assert capsys.readouterr().out.strip() == "VK_SERVICE=1012&VK_VERSION=008&VK_AMOUNT=100.00"


def test_canonical_length_prefixed(capsys, fields_file):
    assert main(["canonical", "-f", str(fields_file), "-c", "length_prefixed"]) == 0
    assert capsys.readouterr().out.strip() == "0041012003008006100.00"


@pytest.mark.parametrize("algorithm", ["hmac", "ed25519"])
def test_sign_then_verify(capsys, tmp_path, fields_file, algorithm):
    keys = keygen(capsys, algorithm)
    sign_key = keys.get("secret_b64") or keys["signing_key_b64"]
    verify_key = keys.get("secret_b64") or keys["verify_key_b64"]

    assert main(["sign", "-f", str(fields_file), "-a", algorithm, "-k", sign_key]) == 0
    signed = json.loads(capsys.readouterr().out)
    assert list(signed) == ["VK_SERVICE", "VK_VERSION", "VK_AMOUNT", "VK_MAC"]

    signed_file = tmp_path / "signed.json"
    signed_file.write_text(json.dumps(signed), encoding="utf-8")
    assert main(["verify", "-f", str(signed_file), "-a", algorithm, "-k", verify_key]) == 0
    assert json.loads(capsys.readouterr().out)["verified"] is True

    signed["VK_AMOUNT"] = "1000.00"
    signed_file.write_text(json.dumps(signed), encoding="utf-8")
    assert main(["verify", "-f", str(signed_file), "-a", algorithm, "-k", verify_key]) == 1
    assert json.loads(capsys.readouterr().out)["mac_matched"] is False


def test_sign_formats(capsys, fields_file):
    secret = keygen(capsys, "hmac")["secret_b64"]

    assert main(["sign", "-f", str(fields_file), "-a", "hmac", "-k", secret, "--format", "mac"]) == 0
    mac = capsys.readouterr().out.strip()

    assert main(["sign", "-f", str(fields_file), "-a", "hmac", "-k", secret, "--format", "html"]) == 0
    html = capsys.readouterr().out
    assert html.count("<input") == 4
    assert f'name="VK_MAC" value="{mac}"' in html


def test_bad_key_reports_error(capsys, fields_file):
    assert main(["sign", "-f", str(fields_file), "-a", "hmac", "-k", "*** not base64 ***"]) == 1
    assert "banklink:algorithm:error" in capsys.readouterr().err


def test_no_command(capsys):
    assert main([]) == 2


def sign_to_file(capsys, tmp_path, fields, secret):
    source = tmp_path / "answer.json"
    source.write_text(json.dumps(fields), encoding="utf-8")
    assert main(["sign", "-f", str(source), "-a", "hmac", "-k", secret]) == 0
    signed = tmp_path / "signed_answer.json"
    signed.write_text(capsys.readouterr().out, encoding="utf-8")
    return signed


def test_verify_chain_accepts_fresh_answer(capsys, tmp_path):
    secret = keygen(capsys, "hmac")["secret_b64"]
    now = datetime.now(timezone.utc).strftime(DATETIME_FORMAT)
    signed = sign_to_file(capsys, tmp_path, dict(FIELDS, VK_DATETIME=now, VK_NONCE="abc"), secret)

    assert main(["verify", "-f", str(signed), "-a", "hmac", "-k", secret, "--chain"]) == 0
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["verified"] is True
    assert [e["verifier_id"] for e in outcome["evaluations"]] == ["timestamp_freshness", "date_consistency"]


def test_verify_chain_rejects_stale_answer(capsys, tmp_path):
    secret = keygen(capsys, "hmac")["secret_b64"]
    stale = (datetime.now(timezone.utc) - timedelta(hours=1)).strftime(DATETIME_FORMAT)
    signed = sign_to_file(capsys, tmp_path, dict(FIELDS, VK_DATETIME=stale), secret)

    assert main(["verify", "-f", str(signed), "-a", "hmac", "-k", secret, "--chain"]) == 1
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["mac_matched"] is True
    assert outcome["evaluations"][0]["failure_code"] == "EXPIRED"


def test_canonical_rejects_non_text_values(capsys, tmp_path):
    path = tmp_path / "numeric.json"
    path.write_text(json.dumps({"VK_SERVICE": "1012", "VK_AMOUNT": 100}), encoding="utf-8")

    assert main(["canonical", "-f", str(path), "-c", "length_prefixed"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "banklink:parameter:invalid" in captured.err
