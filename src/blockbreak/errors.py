class BlockBreakError(Exception):
    """Base class for every error raised by blockbreak."""


class OracleError(BlockBreakError):
    """The oracle could not be queried or answered outside its contract."""


class CipherError(BlockBreakError):
    pass


class InvalidPaddingError(CipherError):
    """Decrypted data does not end in valid PKCS#7 padding."""


class CipherBackendError(CipherError):
    """The underlying cipher rejected the key, IV or data."""


class PluginLoadError(RuntimeError):
    pass


class PluginSignatureError(TypeError):
    pass


# ---- Structure discovery ----

class ProbeError(BlockBreakError):
    """ECB structure discovery failed at the given step."""

    def __init__(self, step: str, detail: str):
        self.step = step
        self.detail = detail
        super().__init__(f"{step}: {detail}")


class NoVaryingByte(ProbeError):
    pass


class NoStabilization(ProbeError):
    pass


class AmbiguousBlockSize(ProbeError):
    pass


class NonDeterministicOracle(ProbeError):
    pass


# ---- Recovery ----

class RecoverError(BlockBreakError):
    pass


class StructureMismatch(RecoverError):
    """Oracle output disagrees with the probed ECB structure."""


class NoMatchingGuess(RecoverError):
    pass


class NoValidPadding(RecoverError):
    pass


class BadFinalPadding(RecoverError):
    pass


class MisalignedCiphertext(RecoverError):
    pass
