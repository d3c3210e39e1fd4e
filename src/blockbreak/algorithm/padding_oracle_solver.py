# padding_oracle_solver.py
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from blockbreak.cipher import unpad
from blockbreak.config import CBC_BLOCK_SIZE
from blockbreak.errors import BadFinalPadding, InvalidPaddingError, MisalignedCiphertext, NoValidPadding
from blockbreak.oracle import PaddingOracle
from blockbreak.state_snapshot import SnapshotPublisher, freeze_blocks
from blockbreak.utils import split_blocks

log = structlog.get_logger(__name__)


@dataclass
class BlockStats:
    tries: int = 0
    positives: int = 0
    confirmed_hits: int = 0
    notes: List[str] = field(default_factory=list)


@dataclass
class SolveBlockResult:
    p_bytes: bytes           # recovered plaintext block, still padded if it is the last one
    stats: BlockStats


def guess_order(padding_val: int) -> List[int]:
    """All byte values, with the trivial guess (a zero XOR) tried last."""
    return [g for g in range(256) if g != padding_val] + [padding_val]


class PaddingOracleSolver:
    """
    Recover CBC plaintext one byte at a time using only a padding oracle.

    For byte i of a block the tail is forged so that a correct guess g of the
    plaintext byte decrypts byte i to padding_val = block_size - i:

        C'[i] = C[i] ^ padding_val ^ g

    Only two-block queries are sent: (C'_{n-1} as IV, C_n).
    """

    def __init__(
        self,
        oracle: PaddingOracle,
        *,
        block_size: int = CBC_BLOCK_SIZE,
        publisher: Optional[SnapshotPublisher] = None,
    ):
        self.oracle = oracle
        self.block_size = block_size
        self.publisher = publisher or SnapshotPublisher("cbc")
        self._prev_blocks: List[bytearray] = []
        self._plaintext_blocks: List[List[Optional[int]]] = []

    def submit(self, prev_prime: bytearray, target_block: bytes) -> bool:
        self.publisher.count()
        return self.oracle.padding_valid(bytes(prev_prime), target_block)

    def confirm_hit(self, prev_prime: bytearray, target_block: bytes, byte_index: int) -> bool:
        """
        Flip the byte just before the forged tail and re-submit.
        At the last byte a hit can also come from the plaintext already ending
        in a longer valid padding; changing byte i-1 breaks that case.
        """
        if byte_index == 0:
            return True
        flipped = bytearray(prev_prime)
        flipped[byte_index - 1] ^= 0x01
        return self.submit(flipped, target_block)

    def solve_block(self, prev_block: bytes, target_block: bytes, block_index_n: int = 0) -> SolveBlockResult:
        """Recover the plaintext of ``target_block``, working back to front."""
        block_size = self.block_size
        stats = BlockStats()
        prev_prime = bytearray(prev_block)
        plaintext: List[Optional[int]] = [None] * block_size
        self._prev_blocks.append(prev_prime)
        self._plaintext_blocks.append(plaintext)

        for byte_index in reversed(range(block_size)):
            padding_val = block_size - byte_index

            found = False
            for byte_guess in guess_order(padding_val):
                delta = padding_val ^ byte_guess
                prev_prime[byte_index] ^= delta

                if self.publisher.active:
                    self.publish(block_index_n, byte_index, byte_guess, padding_val)

                stats.tries += 1
                if self.submit(prev_prime, target_block):
                    stats.positives += 1
                    stats.tries += 0 if byte_index == 0 else 1
                    if self.confirm_hit(prev_prime, target_block, byte_index):
                        stats.confirmed_hits += 1
                        plaintext[byte_index] = byte_guess
                        found = True
                        break
                    stats.notes.append(f"unconfirmed hit at i={byte_index} g={byte_guess:02x}")

                # Undo the trial before the next guess.
                prev_prime[byte_index] ^= delta

            if not found:
                raise NoValidPadding(
                    f"No valid guess found for block {block_index_n} byte {byte_index} "
                    f"(padding value {padding_val}); oracle not behaving like pure PKCS#7?"
                )

            # Re-forge the solved tail from padding_val to padding_val + 1 for the next byte.
            step = padding_val ^ (padding_val + 1)
            for j in range(byte_index, block_size):
                prev_prime[j] ^= step

        return SolveBlockResult(p_bytes=bytes(plaintext), stats=stats)

    def solve_message(self, iv: bytes, ciphertext: bytes) -> bytes:
        """Recover and unpad the plaintext of every ciphertext block."""
        block_size = self.block_size
        if len(iv) != block_size:
            raise MisalignedCiphertext(f"IV must be {block_size} bytes, got {len(iv)}")
        if not ciphertext or len(ciphertext) % block_size != 0:
            raise MisalignedCiphertext(
                f"ciphertext length {len(ciphertext)} is not a positive multiple of {block_size}"
            )

        blocks = split_blocks(ciphertext, block_size)
        self._prev_blocks = []
        self._plaintext_blocks = []
        plaintext_parts: List[bytes] = []

        for idx, target_block in enumerate(blocks):
            prev_block = iv if idx == 0 else blocks[idx - 1]
            res = self.solve_block(prev_block, target_block, block_index_n=idx)
            plaintext_parts.append(res.p_bytes)
            log.info(
                "cbc.block_solved",
                block=idx + 1,
                blocks=len(blocks),
                tries=res.stats.tries,
                confirmed_hits=res.stats.confirmed_hits,
                unconfirmed=len(res.stats.notes),
            )

        padded = b"".join(plaintext_parts)
        self.publisher.publish(
            complete=True,
            block_size=block_size,
            block_index_n=len(blocks) - 1,
            recovered=padded,
            ciphertext_prime=freeze_blocks(self._prev_blocks),
            plaintext=freeze_blocks(self._plaintext_blocks),
        )

        try:
            return unpad(padded, block_size)
        except InvalidPaddingError as e:
            raise BadFinalPadding(
                f"assembled plaintext ends in {padded[-block_size:].hex(' ')}: {e}"
            ) from e

    def publish(self, block_index_n: int, byte_index: int, byte_guess: int, padding_val: int) -> None:
        recovered = b"".join(
            bytes(b for b in block if b is not None) for block in self._plaintext_blocks
        )
        self.publisher.publish(
            block_size=self.block_size,
            block_index_n=block_index_n,
            byte_index_i=byte_index,
            byte_value_g=byte_guess,
            pad_length_k=padding_val,
            recovered=recovered,
            ciphertext_prime=freeze_blocks(self._prev_blocks),
            plaintext=freeze_blocks(self._plaintext_blocks),
        )


def recover_plaintext(
    iv: bytes,
    ciphertext: bytes,
    oracle: PaddingOracle,
    *,
    block_size: int = CBC_BLOCK_SIZE,
    publisher: Optional[SnapshotPublisher] = None,
) -> bytes:
    """Recover the plaintext of a CBC ciphertext using only a padding oracle."""
    return PaddingOracleSolver(oracle, block_size=block_size, publisher=publisher).solve_message(iv, ciphertext)
