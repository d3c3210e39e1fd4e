import structlog

from blockbreak.cipher import AES_BLOCK_SIZE, CipherMode
from blockbreak.oracle import EncryptionOracle
from blockbreak.utils import has_repeated_blocks

log = structlog.get_logger(__name__)


def detect_cipher_mode(oracle: EncryptionOracle, block_size: int = AES_BLOCK_SIZE) -> CipherMode:
    """ Guess whether an oracle encrypts with ECB or CBC.

    Eight blocks of zero bytes leave at least six full identical plaintext
    blocks even behind an unknown prefix. ECB encrypts those identically, CBC
    does not.
    """
    ciphertext = oracle.encrypt(bytes(8 * block_size))
    mode = CipherMode.ECB if has_repeated_blocks(ciphertext, block_size) else CipherMode.CBC
    log.debug("mode.detected", mode=str(mode), ciphertext_len=len(ciphertext))
    return mode
