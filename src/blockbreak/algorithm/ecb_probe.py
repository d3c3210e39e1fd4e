"""
Discover the block layout of an ECB encryption oracle.

The oracle encrypts ``prefix || attacker_bytes || secret`` where the prefix
has an unknown length. Three calibration steps recover:

  vbi                   index of the first ciphertext byte that reacts to attacker input
  blockbreak_input_len  input length that fills the block holding the end of the prefix
  block_size            distance between the boundaries the varying byte jumps across

from which the attacker offset and the prebuffer length needed to align
attacker input on a block boundary are derived.
"""
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Optional, Type

import structlog

from blockbreak.config import ProbeSettings
from blockbreak.errors import (
    AmbiguousBlockSize,
    NonDeterministicOracle,
    NoStabilization,
    NoVaryingByte,
    ProbeError,
)
from blockbreak.oracle import EncryptionOracle
from blockbreak.state_snapshot import SnapshotPublisher

log = structlog.get_logger(__name__)

# Trials looked at before a reappearing index may be accepted.
MIN_TRIALS = 3


@dataclass(frozen=True, slots=True)
class EcbStructure:
    block_size: int
    attacker_offset: int
    prebuffer_len: int

    @property
    def aligned_offset(self) -> int:
        """First block boundary at or after the start of attacker input."""
        return self.attacker_offset + self.prebuffer_len


def first_difference(a: bytes, b: bytes) -> Optional[int]:
    """Lowest index at which a and b differ, or None if they are identical."""
    for i, (x, y) in enumerate(zip(a, b)):
        if x != y:
            return i
    if len(a) != len(b):
        return min(len(a), len(b))
    return None


class EcbProber:

    def __init__(
        self,
        oracle: EncryptionOracle,
        settings: Optional[ProbeSettings] = None,
        publisher: Optional[SnapshotPublisher] = None,
    ):
        self.oracle = oracle
        self.settings = settings or ProbeSettings()
        self.publisher = publisher or SnapshotPublisher("ecb-probe")
        self.filler = bytes([self.settings.filler])

    def query(self, data: bytes) -> bytes:
        self.publisher.count()
        return self.oracle.encrypt(data)

    def probe(self) -> EcbStructure:
        vbi = self.find_varying_block_index()
        blockbreak_input_len = self.find_blockbreak_input_len(vbi)
        block_size = self.find_block_size(vbi, blockbreak_input_len)

        structure = EcbStructure(
            block_size=block_size,
            attacker_offset=vbi + block_size - blockbreak_input_len,
            prebuffer_len=blockbreak_input_len % block_size,
        )
        log.info(
            "probe.complete",
            block_size=structure.block_size,
            attacker_offset=structure.attacker_offset,
            prebuffer_len=structure.prebuffer_len,
            queries=self.publisher.queries,
        )
        self.publisher.publish(complete=True, phase="done", block_size=block_size)
        return structure

    def find_varying_block_index(self) -> int:
        baseline = self.query(self.filler)
        if self.query(self.filler) != baseline:
            raise NonDeterministicOracle(
                "determinism check",
                "two identical queries returned different ciphertexts",
            )

        self.publisher.publish(phase="varying block")
        vbi = self.consistent_variance(b"", baseline, "varying block", NoVaryingByte)
        log.debug("probe.vbi", vbi=vbi)
        return vbi

    def find_blockbreak_input_len(self, vbi: int) -> int:
        outputs: Dict[int, bytes] = {}

        def output(n: int) -> bytes:
            if n not in outputs:
                outputs[n] = self.query(self.filler * n)
            return outputs[n]

        confirm = self.settings.confirm_lengths
        for n in range(1, self.settings.max_input_len + 1):
            self.publisher.publish(phase="block boundary", byte_index_i=n)
            window = output(n)[vbi:vbi + n]
            # Once the block at vbi is full of filler, growing the input only
            # moves later blocks, so the window stops changing.
            if all(output(m)[vbi:vbi + n] == window for m in range(n + 1, n + 2 + confirm)):
                log.debug("probe.blockbreak", blockbreak_input_len=n)
                return n

        raise NoStabilization(
            "block boundary",
            f"ciphertext from index {vbi} kept changing for inputs up to {self.settings.max_input_len} bytes",
        )

    def find_block_size(self, vbi: int, blockbreak_input_len: int) -> int:
        self.publisher.publish(phase="block size")
        head = self.filler * blockbreak_input_len
        baseline = self.query(head + self.filler)
        next_boundary = self.consistent_variance(head, baseline, "block size", AmbiguousBlockSize)
        block_size = next_boundary - vbi
        if block_size <= 0:
            raise AmbiguousBlockSize(
                "block size",
                f"varying byte landed at {next_boundary}, not after the varying block at {vbi}",
            )

        # One block further out the varying byte must skip exactly one more block.
        head = self.filler * (blockbreak_input_len + block_size)
        far_baseline = self.query(head + self.filler)
        far_boundary = self.consistent_variance(head, far_baseline, "block size", AmbiguousBlockSize)
        if far_boundary - vbi != 2 * block_size:
            raise AmbiguousBlockSize(
                "block size",
                f"boundaries at {next_boundary} and {far_boundary} do not repeat every {block_size} bytes",
            )

        for output in (baseline, far_baseline):
            if len(output) % block_size != 0:
                raise AmbiguousBlockSize(
                    "block size",
                    f"ciphertext length {len(output)} is not a multiple of {block_size}",
                )

        log.debug("probe.block_size", block_size=block_size)
        return block_size

    def consistent_variance(
        self,
        head: bytes,
        baseline: bytes,
        step: str,
        error: Type[ProbeError],
    ) -> int:
        """Vary the byte after ``head`` and return the lowest ciphertext index it changes.

        A chance match of leading ciphertext bytes can only push the observed
        index later, so the lowest index seen at least twice wins.
        """
        counts: Counter = Counter()
        for tried, trial in enumerate(self.settings.trial_bytes, start=1):
            index = first_difference(baseline, self.query(head + bytes([trial])))
            if index is not None:
                counts[index] += 1
            if tried >= MIN_TRIALS and counts:
                lowest = min(counts)
                if counts[lowest] >= 2:
                    return lowest

        raise error(
            step,
            f"no index reappeared after {len(self.settings.trial_bytes)} trial bytes "
            f"(candidates: {dict(counts)})",
        )


def probe(
    oracle: EncryptionOracle,
    settings: Optional[ProbeSettings] = None,
    publisher: Optional[SnapshotPublisher] = None,
) -> EcbStructure:
    """Discover block size, attacker offset and prebuffer length of an ECB oracle."""
    return EcbProber(oracle, settings, publisher).probe()
