from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple, TypeAlias

from blockbreak.state_queue import SingleSlotQueue

AttackKind: TypeAlias = Literal["ecb-probe", "ecb-recover", "cbc"]
Block: TypeAlias = Tuple[Optional[int], ...]


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Immutable view of an attack in progress, consumed by the UI."""

    state_version: int
    attack: AttackKind
    complete: bool
    queries: int
    block_size: int = 0
    block_index_n: int = 0
    byte_index_i: int = 0
    byte_value_g: int = 0
    pad_length_k: int = 0
    phase: str = ""

    recovered: bytes = b""
    ciphertext_prime: Tuple[Block, ...] = field(default_factory=tuple)
    plaintext: Tuple[Block, ...] = field(default_factory=tuple)


class SnapshotPublisher:
    """Builds versioned snapshots and pushes them onto a queue.

    A publisher without a queue only counts queries, so the algorithms can
    report progress unconditionally.
    """

    def __init__(self, attack: AttackKind, queue: Optional[SingleSlotQueue[StateSnapshot]] = None):
        self.attack = attack
        self.queue = queue
        self.version = 0
        self.queries = 0

    @property
    def active(self) -> bool:
        return self.queue is not None

    def count(self, n: int = 1) -> None:
        self.queries += n

    def publish(self, *, complete: bool = False, **fields) -> Optional[StateSnapshot]:
        if self.queue is None:
            return None
        self.version += 1
        snapshot = StateSnapshot(
            state_version=self.version,
            attack=self.attack,
            complete=complete,
            queries=self.queries,
            **fields,
        )
        self.queue.publish(snapshot)
        return snapshot


def freeze_blocks(blocks) -> Tuple[Block, ...]:
    return tuple(tuple(block) for block in blocks)
