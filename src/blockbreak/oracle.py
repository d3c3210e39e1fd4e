from typing import Callable, List, Protocol, runtime_checkable

import requests
import structlog

from blockbreak.utils import b64_decode, b64_encode
from blockbreak.errors import OracleError

log = structlog.get_logger(__name__)

EncryptFn = Callable[[bytes], bytes]
PaddingValidFn = Callable[[bytes, bytes], bool]

DEFAULT_TIMEOUT = 10


def decode_fields(url: str, response: requests.Response, *names: str) -> List[bytes]:
    """Base64-decode the named fields of a JSON reply, as OracleError if the body is malformed."""
    try:
        data = response.json()
        return [b64_decode(data[name]) for name in names]
    except (ValueError, KeyError, TypeError) as e:
        raise OracleError(f"Malformed response from {url}: {type(e).__name__}: {e}") from e


@runtime_checkable
class EncryptionOracle(Protocol):
    """Attacker bytes in, full ciphertext out. Must be deterministic per input."""

    def encrypt(self, data: bytes) -> bytes: ...


@runtime_checkable
class PaddingOracle(Protocol):
    """Reports whether ``ciphertext`` decrypts under ``iv`` to valid PKCS#7."""

    def padding_valid(self, iv: bytes, ciphertext: bytes) -> bool: ...


class FunctionEncryptionOracle:
    """Adapts a plain ``fn(data) -> ciphertext`` callable."""

    def __init__(self, fn: EncryptFn):
        self._fn = fn

    def encrypt(self, data: bytes) -> bytes:
        return bytes(self._fn(data))


class FunctionPaddingOracle:
    """Adapts a plain ``fn(iv, ciphertext) -> bool`` callable."""

    def __init__(self, fn: PaddingValidFn):
        self._fn = fn

    def padding_valid(self, iv: bytes, ciphertext: bytes) -> bool:
        return bool(self._fn(iv, ciphertext))


class HttpEncryptionOracle:
    """ Submit attacker bytes to a remote ECB encryption endpoint. """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.timeout = timeout

    def encrypt(self, data: bytes) -> bytes:
        payload = {"data_b64": b64_encode(data)}
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise OracleError(f"Request to {self.url} failed: {e}") from e

        if response.status_code != 200:
            raise OracleError(f"Failed to encrypt via {self.url}: {response.status_code} {response.text}")
        (ciphertext,) = decode_fields(self.url, response, "ciphertext_b64")
        return ciphertext


class HttpPaddingOracle:
    """ Submit an (IV, ciphertext) pair to a remote validation endpoint.

    HTTP 200 means the padding was valid, HTTP 400 means it was not.
    Anything else is treated as an oracle failure rather than a guess result.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.timeout = timeout

    def padding_valid(self, iv: bytes, ciphertext: bytes) -> bool:
        payload = {
            "iv_b64": b64_encode(iv),
            "ciphertext_b64": b64_encode(ciphertext),
        }
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise OracleError(f"Request to {self.url} failed: {e}") from e

        if response.status_code == 200:
            return True
        if response.status_code == 400:
            return False
        raise OracleError(f"Unexpected response from {self.url}: {response.status_code} {response.text}")


def fetch_cbc_challenge(url: str, timeout: float = DEFAULT_TIMEOUT) -> tuple[bytes, bytes]:
    """ Fetch an (IV, ciphertext) pair from the given challenge endpoint. """
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise OracleError(f"Request to {url} failed: {e}") from e

    if response.status_code != 200:
        raise OracleError(f"Failed to get {url}: {response.status_code} {response.text}")
    iv, ciphertext = decode_fields(url, response, "iv_b64", "ciphertext_b64")
    return iv, ciphertext
