"""
Forwarding Test Suite

Uses a stub session; no network access.
"""

import unittest

from banklink.logging_config import FORWARD_LOGGER
from banklink.packet import Packet
from banklink.transport import forward

from support import EchoAlgorithm


class StubResponse:
    def __init__(self, status_code=200, headers=None):
        self.status_code = status_code
        self.headers = headers or {}


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response or StubResponse(headers={"Server": "BankGW/2.1"})
        self.error = error
        self.calls = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


def signed_packet():
    packet = Packet("1012", EchoAlgorithm(), verifiers=())
    packet.set_parameter("VK_SERVICE", "1012")
    packet.set_parameter("VK_MSG", "Käsi")
    packet.sign()
    return packet


class TestForward(unittest.TestCase):

    def test_posts_form_in_order(self):
        packet = signed_packet()
        session = StubSession()

        response = forward(packet, "https://bank.example/pay", session=session, timeout=5)

        self.assertIs(response, session.response)
        call = session.calls[0]
        self.assertEqual(call["url"], "https://bank.example/pay")
        self.assertEqual(call["timeout"], 5)
        self.assertEqual([name for name, _ in call["data"]], [b"VK_SERVICE", b"VK_MSG", b"VK_MAC"])
        self.assertEqual(call["data"][1][1], "Käsi".encode("utf-8"))
        self.assertIn("charset=UTF-8", call["headers"]["Content-Type"])
        self.assertFalse(session.closed)

    def test_latin1_encoding(self):
        session = StubSession()
        forward(signed_packet(), "http://bank.example/pay", session=session, encoding="ISO-8859-1")
        self.assertEqual(session.calls[0]["data"][1][1], "Käsi".encode("iso-8859-1"))

    def test_server_header_recorded(self):
        packet = signed_packet()
        forward(packet, "https://bank.example/pay", session=StubSession())
        self.assertEqual(packet.server_header, "BankGW/2.1")

    def test_audit_before_send(self):
        packet = signed_packet()
        session = StubSession(error=ConnectionError("refused"))

        with self.assertLogs(FORWARD_LOGGER, level="DEBUG") as logs:
            with self.assertRaises(ConnectionError):
                forward(packet, "https://bank.example/pay", session=session)

        audit = logs.records[0].extra_fields["audit"]
        self.assertEqual(audit["CHANNEL"], "HTTPS")
        self.assertEqual(audit["DESTINATION"], "https://bank.example/pay")

    def test_unsupported_scheme(self):
        session = StubSession()
        with self.assertRaises(ValueError):
            forward(signed_packet(), "ftp://bank.example/pay", session=session)
        self.assertEqual(session.calls, [])


if __name__ == "__main__":
    unittest.main()
