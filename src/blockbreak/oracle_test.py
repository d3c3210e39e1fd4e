import base64

import pytest
import requests

from blockbreak import oracle as oracle_module
from blockbreak.errors import OracleError
from blockbreak.oracle import (
    EncryptionOracle,
    FunctionEncryptionOracle,
    FunctionPaddingOracle,
    HttpEncryptionOracle,
    HttpPaddingOracle,
    PaddingOracle,
    fetch_cbc_challenge,
)


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestFunctionOracles:
    """Test suite for callable adapters"""

    def test_encryption_adapter(self):
        """Test that the adapter satisfies the protocol and returns bytes"""
        oracle = FunctionEncryptionOracle(lambda data: bytearray(data[::-1]))
        assert isinstance(oracle, EncryptionOracle)
        assert oracle.encrypt(b"abc") == b"cba"

    def test_padding_adapter(self):
        """Test that the adapter coerces results to bool"""
        oracle = FunctionPaddingOracle(lambda iv, ciphertext: len(ciphertext))
        assert isinstance(oracle, PaddingOracle)
        assert oracle.padding_valid(b"", b"x") is True
        assert oracle.padding_valid(b"", b"") is False


class TestHttpEncryptionOracle:
    """Test suite for HttpEncryptionOracle"""

    def test_encrypt(self, monkeypatch):
        """Test that data is sent base64 encoded and the ciphertext decoded"""
        calls = []

        def fake_post(url, json, timeout):
            calls.append((url, json, timeout))
            return FakeResponse(200, {"ciphertext_b64": b64(b"\x00" * 16)})

        monkeypatch.setattr(oracle_module.requests, "post", fake_post)
        result = HttpEncryptionOracle("http://oracle/encrypt", timeout=3).encrypt(b"hi")

        assert result == b"\x00" * 16
        assert calls == [("http://oracle/encrypt", {"data_b64": b64(b"hi")}, 3)]

    def test_error_status(self, monkeypatch):
        """Test that a non-200 response is an OracleError"""
        monkeypatch.setattr(oracle_module.requests, "post", lambda *a, **kw: FakeResponse(500, text="boom"))
        with pytest.raises(OracleError, match="500"):
            HttpEncryptionOracle("http://oracle/encrypt").encrypt(b"hi")

    def test_connection_error(self, monkeypatch):
        """Test that transport failures are wrapped"""
        def fail(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(oracle_module.requests, "post", fail)
        with pytest.raises(OracleError, match="refused"):
            HttpEncryptionOracle("http://oracle/encrypt").encrypt(b"hi")

    @pytest.mark.parametrize("payload", [
        {"unexpected": 1},
        {"ciphertext_b64": "a"},
        ["not", "an", "object"],
        requests.JSONDecodeError("Expecting value", "<html>", 0),
    ])
    def test_malformed_body(self, monkeypatch, payload):
        """Test that a 200 reply with an unusable body is an OracleError"""
        monkeypatch.setattr(oracle_module.requests, "post", lambda *a, **kw: FakeResponse(200, payload))
        with pytest.raises(OracleError, match="Malformed response"):
            HttpEncryptionOracle("http://oracle/encrypt").encrypt(b"hi")


class TestHttpPaddingOracle:
    """Test suite for HttpPaddingOracle"""

    @pytest.mark.parametrize("status,expected", [(200, True), (400, False)])
    def test_status_mapping(self, monkeypatch, status, expected):
        """Test that 200 means valid and 400 means invalid"""
        monkeypatch.setattr(oracle_module.requests, "post", lambda *a, **kw: FakeResponse(status))
        assert HttpPaddingOracle("http://oracle/validate").padding_valid(bytes(16), bytes(16)) is expected

    def test_payload(self, monkeypatch):
        """Test that IV and ciphertext are sent as separate base64 fields"""
        sent = {}

        def fake_post(url, json, timeout):
            sent.update(json)
            return FakeResponse(200)

        monkeypatch.setattr(oracle_module.requests, "post", fake_post)
        HttpPaddingOracle("http://oracle/validate").padding_valid(b"I" * 16, b"C" * 16)
        assert sent == {"iv_b64": b64(b"I" * 16), "ciphertext_b64": b64(b"C" * 16)}

    @pytest.mark.parametrize("status", [404, 422, 500])
    def test_unexpected_status(self, monkeypatch, status):
        """Test that other statuses are oracle failures, not guesses"""
        monkeypatch.setattr(oracle_module.requests, "post", lambda *a, **kw: FakeResponse(status))
        with pytest.raises(OracleError):
            HttpPaddingOracle("http://oracle/validate").padding_valid(bytes(16), bytes(16))


class TestFetchCbcChallenge:
    """Test suite for fetch_cbc_challenge"""

    def test_fetch(self, monkeypatch):
        """Test that the challenge is decoded into IV and ciphertext"""
        payload = {"alg": "AES-128-CBC", "iv_b64": b64(b"I" * 16), "ciphertext_b64": b64(b"C" * 32)}
        monkeypatch.setattr(oracle_module.requests, "get", lambda *a, **kw: FakeResponse(200, payload))
        assert fetch_cbc_challenge("http://oracle/challenge") == (b"I" * 16, b"C" * 32)

    def test_error_status(self, monkeypatch):
        """Test that a failed fetch is an OracleError"""
        monkeypatch.setattr(oracle_module.requests, "get", lambda *a, **kw: FakeResponse(503, text="down"))
        with pytest.raises(OracleError):
            fetch_cbc_challenge("http://oracle/challenge")

    def test_missing_field(self, monkeypatch):
        """Test that a challenge without an IV is an OracleError"""
        payload = {"ciphertext_b64": b64(b"C" * 32)}
        monkeypatch.setattr(oracle_module.requests, "get", lambda *a, **kw: FakeResponse(200, payload))
        with pytest.raises(OracleError, match="iv_b64"):
            fetch_cbc_challenge("http://oracle/challenge")
