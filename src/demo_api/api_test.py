import base64

import pytest
from fastapi.testclient import TestClient

from blockbreak.algorithm.ecb_probe import probe
from blockbreak.algorithm.ecb_recover import recover_secret
from blockbreak.algorithm.padding_oracle_solver import recover_plaintext
from blockbreak.blackbox import CBC_CHALLENGE_LINES, ROLLIN_SECRET
from blockbreak.oracle import FunctionEncryptionOracle, FunctionPaddingOracle
from demo_api.api import create_app


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def client():
    return TestClient(create_app(seed=1234))


class TestDemoApi:
    """Test suite for the demo oracle API"""

    def test_ecb_encrypt(self, client):
        """Test that equal input blocks encrypt identically"""
        response = client.post("/api/ecb/encrypt", json={"data_b64": b64(b"A" * 32)})
        assert response.status_code == 200
        body = response.json()
        assert body["alg"] == "AES-128-ECB"
        ciphertext = base64.b64decode(body["ciphertext_b64"])
        assert ciphertext.hex() == body["ciphertext_hex"]
        assert ciphertext[:16] == ciphertext[16:32]

    def test_bad_base64(self, client):
        """Test that undecodable input is a 422"""
        response = client.post("/api/ecb/encrypt", json={"data_b64": "a"})
        assert response.status_code == 422

    def test_ecb_prefix_attack(self, client):
        """Test the full ECB attack against the prefixed endpoint"""
        def encrypt(data: bytes) -> bytes:
            response = client.post("/api/ecb-prefix/encrypt", json={"data_b64": b64(data)})
            return base64.b64decode(response.json()["ciphertext_b64"])

        oracle = FunctionEncryptionOracle(encrypt)
        structure = probe(oracle)
        assert 5 <= structure.attacker_offset <= 49
        assert recover_secret(oracle, structure) == ROLLIN_SECRET

    def test_cbc_challenge_and_validate(self, client):
        """Test the padding oracle attack through the HTTP endpoints"""
        challenge = client.get("/api/cbc/challenge").json()
        assert challenge["alg"] == "AES-128-CBC"
        iv = base64.b64decode(challenge["iv_b64"])
        ciphertext = base64.b64decode(challenge["ciphertext_b64"])

        def padding_valid(iv: bytes, ciphertext: bytes) -> bool:
            response = client.post("/api/cbc/validate", json={"iv_b64": b64(iv), "ciphertext_b64": b64(ciphertext)})
            assert response.status_code in (200, 400)
            return response.status_code == 200

        plaintext = recover_plaintext(iv, ciphertext, FunctionPaddingOracle(padding_valid))
        assert plaintext in CBC_CHALLENGE_LINES

    def test_validate_invalid_padding(self, client):
        """Test that flipping the last padding byte is reported as invalid padding"""
        challenge = client.get("/api/cbc/challenge").json()
        data = bytearray(base64.b64decode(challenge["iv_b64"]) + base64.b64decode(challenge["ciphertext_b64"]))
        # Any padding value 1..16 xor 0xff is out of range.
        data[-17] ^= 0xFF
        response = client.post(
            "/api/cbc/validate",
            json={"iv_b64": b64(bytes(data[:16])), "ciphertext_b64": b64(bytes(data[16:]))},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid padding bytes."

    def test_validate_misaligned(self, client):
        """Test that a partial block is rejected rather than reported as bad padding"""
        response = client.post("/api/cbc/validate", json={"iv_b64": b64(bytes(16)), "ciphertext_b64": b64(bytes(15))})
        assert response.status_code == 422
