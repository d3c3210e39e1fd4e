"""AES-128 ECB/CBC and PKCS#7 helpers backed by the ``cryptography`` package.

These are the collaborators the attacks are run against. Padding is applied
here (not by the cipher mode) so that oracles can report padding failures
separately from backend failures.
"""
from enum import Enum

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
import structlog

from blockbreak.errors import CipherBackendError, InvalidPaddingError

log = structlog.get_logger(__name__)

AES_BLOCK_SIZE = 16


class CipherMode(str, Enum):
    ECB = "ECB"
    CBC = "CBC"

    def __str__(self):
        return self.value


def pad(data: bytes, block_size: int = AES_BLOCK_SIZE) -> bytes:
    """Append 1..block_size bytes of PKCS#7 padding."""
    padder = padding.PKCS7(block_size * 8).padder()
    return padder.update(data) + padder.finalize()


def unpad(data: bytes, block_size: int = AES_BLOCK_SIZE) -> bytes:
    """Strip PKCS#7 padding, raising InvalidPaddingError if it is malformed."""
    if not data or len(data) % block_size != 0:
        raise InvalidPaddingError(f"length {len(data)} is not a positive multiple of {block_size}")

    pad_len = data[-1]
    if pad_len == 0 or pad_len > block_size:
        raise InvalidPaddingError(f"padding value {pad_len} out of range for block size {block_size}")

    unpadder = padding.PKCS7(block_size * 8).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError as e:
        raise InvalidPaddingError(str(e)) from e


def _aes(key: bytes, mode: modes.Mode) -> Cipher:
    try:
        return Cipher(algorithms.AES(key), mode)
    except ValueError as e:
        log.error("cipher setup failed", error=str(e), key_len=len(key))
        raise CipherBackendError(str(e)) from e


def _run(context, data: bytes) -> bytes:
    try:
        return context.update(data) + context.finalize()
    except ValueError as e:
        raise CipherBackendError(str(e)) from e


def ecb_encrypt(key: bytes, plaintext: bytes) -> bytes:
    return _run(_aes(key, modes.ECB()).encryptor(), pad(plaintext))


def ecb_decrypt(key: bytes, ciphertext: bytes) -> bytes:
    padded = _run(_aes(key, modes.ECB()).decryptor(), ciphertext)
    return unpad(padded)


def cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    """ Encrypts the padded plaintext under CBC. The IV is not prepended. """
    return _run(_aes(key, modes.CBC(iv)).encryptor(), pad(plaintext))


def cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """ Decrypts and unpads. Raises InvalidPaddingError on bad padding. """
    padded = _run(_aes(key, modes.CBC(iv)).decryptor(), ciphertext)
    return unpad(padded)
