"""
Byte-at-a-time recovery of the secret suffix an ECB oracle appends.

Each round shifts the next unknown secret byte into the last position of a
block, then encrypts every candidate behind the same known bytes. ECB maps
equal plaintext blocks to equal ciphertext blocks, so exactly one candidate
reproduces the target block.

Recovery stops at the first recovered byte equal to 0x01. That is the single
PKCS#7 padding byte the oracle appends once the whole secret has been shifted
past, so a secret that itself contains 0x01 is cut short there.
"""
from typing import Dict, Iterable, Optional

import structlog

from blockbreak.algorithm.ecb_probe import EcbStructure
from blockbreak.config import ECB_GUESS_VALUES, FILLER
from blockbreak.errors import NoMatchingGuess, StructureMismatch
from blockbreak.oracle import EncryptionOracle
from blockbreak.state_snapshot import SnapshotPublisher

log = structlog.get_logger(__name__)

END_OF_SECRET = 0x01


class EcbRecoverer:

    def __init__(
        self,
        oracle: EncryptionOracle,
        structure: EcbStructure,
        guess_values: Iterable[int] = ECB_GUESS_VALUES,
        filler: int = FILLER,
        publisher: Optional[SnapshotPublisher] = None,
    ):
        self.oracle = oracle
        self.structure = structure
        self.guess_values = list(guess_values)
        if not self.guess_values:
            raise ValueError("guess_values must contain at least one byte value")
        self.filler = bytes([filler])
        self.publisher = publisher or SnapshotPublisher("ecb-recover")
        self.prebuffer = self.filler * structure.prebuffer_len

    def query(self, data: bytes) -> bytes:
        self.publisher.count()
        return self.oracle.encrypt(data)

    def block_at(self, ciphertext: bytes, offset: int) -> bytes:
        block_size = self.structure.block_size
        if len(ciphertext) % block_size != 0:
            raise StructureMismatch(
                f"ciphertext length {len(ciphertext)} is not a multiple of block size {block_size}"
            )
        if len(ciphertext) < offset + block_size:
            raise StructureMismatch(
                f"ciphertext of {len(ciphertext)} bytes has no block at offset {offset}"
            )
        return ciphertext[offset:offset + block_size]

    def guess_dictionary(self, window: bytes) -> Dict[bytes, int]:
        """Map the aligned block of ``window || candidate`` to each candidate."""
        start = self.structure.aligned_offset
        dictionary = {}
        for candidate in self.guess_values:
            ciphertext = self.query(self.prebuffer + window + bytes([candidate]))
            dictionary[self.block_at(ciphertext, start)] = candidate
        return dictionary

    def recover(self) -> bytes:
        block_size = self.structure.block_size
        start = self.structure.aligned_offset

        # Aligned input with no shift: everything after `start` is secret + padding.
        unshifted = self.query(self.prebuffer)
        self.block_at(unshifted, start)
        max_secret_len = len(unshifted) - start

        recovered = bytearray()
        window = self.filler * (block_size - 1)

        while len(recovered) < max_secret_len:
            k = len(recovered)
            shift = block_size - 1 - (k % block_size)
            target_offset = start + (k // block_size) * block_size
            target = self.block_at(self.query(self.prebuffer + self.filler * shift), target_offset)

            dictionary = self.guess_dictionary(window)
            byte = dictionary.get(target)
            if byte is None:
                raise NoMatchingGuess(
                    f"no candidate in {self.guess_values[0]}..{self.guess_values[-1]} reproduced "
                    f"the block at offset {target_offset} for secret byte {k}"
                )

            self.publisher.publish(
                block_size=block_size,
                block_index_n=k // block_size,
                byte_index_i=k % block_size,
                byte_value_g=byte,
                recovered=bytes(recovered),
            )

            if byte == END_OF_SECRET:
                log.info("recover.complete", secret_len=k, queries=self.publisher.queries)
                self.publisher.publish(complete=True, block_size=block_size, recovered=bytes(recovered))
                return bytes(recovered)

            log.debug("recover.byte", index=k, value=byte)
            recovered.append(byte)
            window = window[1:] + bytes([byte])

        raise StructureMismatch(
            f"recovered {len(recovered)} bytes without reaching the end-of-secret padding byte"
        )


def recover_secret(
    oracle: EncryptionOracle,
    structure: EcbStructure,
    guess_values: Iterable[int] = ECB_GUESS_VALUES,
    publisher: Optional[SnapshotPublisher] = None,
) -> bytes:
    """Recover the secret suffix of an ECB oracle with a previously probed structure."""
    return EcbRecoverer(oracle, structure, guess_values, publisher=publisher).recover()
