from dataclasses import dataclass

# Bytes cycled through when looking for the first ciphertext byte that reacts
# to attacker input. Printable so HTTP and text oracles accept them.
TRIAL_BYTES = bytes(range(0x21, 0x7F))

# Filler for padding/alignment input; also seeds the recovery window.
FILLER = 0x00

# Longest attacker input tried while looking for the block boundary.
MAX_INPUT_LEN = 256

# Extra input lengths that must agree before a block boundary is accepted.
CONFIRM_LENGTHS = 3

# ECB secret recovery only guesses ASCII.
ECB_GUESS_VALUES = range(128)

CBC_BLOCK_SIZE = 16

DEMO_API_URL = "http://127.0.0.1:8000/api"


@dataclass(frozen=True, slots=True)
class ProbeSettings:
    filler: int = FILLER
    trial_bytes: bytes = TRIAL_BYTES
    max_input_len: int = MAX_INPUT_LEN
    confirm_lengths: int = CONFIRM_LENGTHS

    def __post_init__(self):
        if self.filler in self.trial_bytes:
            raise ValueError("filler byte must not be one of the trial bytes")
        if len(self.trial_bytes) < 2:
            raise ValueError("at least two trial bytes are needed")
