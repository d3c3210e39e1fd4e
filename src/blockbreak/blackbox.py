"""
Concrete oracles to run the attacks against.

Every oracle here hides its key (and for the ECB oracles, a secret suffix and
optional prefix) and exposes only the EncryptionOracle / PaddingOracle
interface. Random state is always an explicit ``random.Random`` so runs can be
reproduced from a seed.
"""
import hashlib
import hmac
import os
import random
from typing import Optional, Tuple

import structlog

from blockbreak.cipher import AES_BLOCK_SIZE, CipherMode, cbc_decrypt, cbc_encrypt, ecb_encrypt, pad
from blockbreak.errors import InvalidPaddingError
from blockbreak.utils import b64_decode

log = structlog.get_logger(__name__)

ROLLIN_SECRET = b64_decode(
    "Um9sbGluJyBpbiBteSA1LjAKV2l0aCBteSByYWctdG9wIGRvd24gc28gbXkgaGFpciBjYW4gYmx"
    "vdwpUaGUgZ2lybGllcyBvbiBzdGFuZGJ5IHdhdmluZyBqdXN0IHRvIHNheSBoaQpEaWQgeW91IHN"
    "0b3A/IE5vLCBJIGp1c3QgZHJvdmUgYnkK"
)

CBC_CHALLENGE_LINES = [
    b"000000Now that the party is jumping",
    b"000001With the bass kicked in and the Vega's are pumpin'",
    b"000002Quick to the point, to the point, no faking",
    b"000003Cooking MC's like a pound of bacon",
    b"000004Burning 'em, if you ain't quick and nimble",
    b"000005I go crazy when I hear a cymbal",
    b"000006And a high hat with a souped up tempo",
    b"000007I'm on a roll, it's time to go solo",
    b"000008ollin' in my five point oh",
    b"000009ith my rag-top down so my hair can blow",
]

PREFIX_LEN_RANGE = (5, 49)
PADDING_LEN_RANGE = (5, 10)


def random_key(size: int = AES_BLOCK_SIZE) -> bytes:
    return os.urandom(size)


def deterministic_key(size: int = AES_BLOCK_SIZE, seed: int = 2355) -> bytes:
    """Same key for the same seed, across processes."""
    return random.Random(seed).randbytes(size)


class EcbSuffixOracle:
    """AES-128-ECB of ``prefix || attacker bytes || secret`` under a fixed key."""

    def __init__(self, key: bytes, secret: bytes, prefix: bytes = b""):
        self._key = key
        self._secret = secret
        self._prefix = prefix

    @classmethod
    def with_random_prefix(
        cls,
        secret: bytes,
        key: Optional[bytes] = None,
        rng: Optional[random.Random] = None,
    ) -> "EcbSuffixOracle":
        """Prepend 5..49 random bytes, fixed for the lifetime of the oracle."""
        rng = rng or random.Random()
        prefix = rng.randbytes(rng.randint(*PREFIX_LEN_RANGE))
        log.debug("blackbox.prefix", prefix_len=len(prefix))
        return cls(key or random_key(), secret, prefix)

    def encrypt(self, data: bytes) -> bytes:
        return ecb_encrypt(self._key, self._prefix + data + self._secret)


class SyntheticEcbOracle:
    """ ECB semantics for any block size up to 32 bytes.

    Each padded block is replaced by a truncated HMAC-SHA256 of itself, so
    equal plaintext blocks give equal ciphertext blocks and anything else
    differs. The mapping cannot be decrypted, which the attacks never need.
    """

    MAX_BLOCK_SIZE = hashlib.sha256().digest_size

    def __init__(self, block_size: int, secret: bytes, prefix: bytes = b"", key: bytes = b"blockbreak"):
        if not 1 <= block_size <= self.MAX_BLOCK_SIZE:
            raise ValueError(f"block size must be between 1 and {self.MAX_BLOCK_SIZE}")
        self.block_size = block_size
        self._secret = secret
        self._prefix = prefix
        self._key = key

    def encrypt(self, data: bytes) -> bytes:
        bs = self.block_size
        padded = pad(self._prefix + data + self._secret, bs)
        return b"".join(
            hmac.new(self._key, padded[i:i + bs], hashlib.sha256).digest()[:bs]
            for i in range(0, len(padded), bs)
        )


class RandomModeOracle:
    """ Encrypts under a fresh random key with ECB or CBC chosen at random.

    5..10 random bytes are added on each side of the input. The mode used by
    the most recent call is kept in ``last_mode`` to check detectors against.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.last_mode: Optional[CipherMode] = None

    def encrypt(self, data: bytes) -> bytes:
        rng = self.rng
        key = rng.randbytes(AES_BLOCK_SIZE)
        before = rng.randbytes(rng.randint(*PADDING_LEN_RANGE))
        after = rng.randbytes(rng.randint(*PADDING_LEN_RANGE))
        message = before + data + after

        self.last_mode = rng.choice(list(CipherMode))
        match self.last_mode:
            case CipherMode.ECB:
                return ecb_encrypt(key, message)
            case CipherMode.CBC:
                return cbc_encrypt(key, rng.randbytes(AES_BLOCK_SIZE), message)


class CbcPaddingOracle:
    """Holds an AES key; encrypts under random IVs and reveals only padding validity."""

    def __init__(self, key: Optional[bytes] = None, rng: Optional[random.Random] = None):
        self._key = key or random_key()
        self._rng = rng

    def new_iv(self) -> bytes:
        if self._rng is None:
            return random_key(AES_BLOCK_SIZE)
        return self._rng.randbytes(AES_BLOCK_SIZE)

    def encrypt(self, plaintext: bytes) -> Tuple[bytes, bytes]:
        iv = self.new_iv()
        return iv, cbc_encrypt(self._key, iv, plaintext)

    def padding_valid(self, iv: bytes, ciphertext: bytes) -> bool:
        try:
            cbc_decrypt(self._key, iv, ciphertext)
        except InvalidPaddingError:
            return False
        return True
