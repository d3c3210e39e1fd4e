import base64
import binascii
import importlib.util
import inspect
import types
from typing import Callable, Literal, List, Union, TypeAlias

from blockbreak.errors import PluginLoadError, PluginSignatureError

PLUGIN_FUNC_NAME = "padding_valid"

CiphertextFormat: TypeAlias = Literal["b64", "b64_urlsafe", "hex", "raw"]


def load_module_from_file(module_file_path: str) -> types.ModuleType:
    """Load a Python module file."""
    spec = importlib.util.spec_from_file_location("oracle_fn", module_file_path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Could not load spec for: {module_file_path}")
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # executes user code
    return mod


def load_oracle_fn(module_file_path: str) -> Callable[[bytes, bytes], bool]:
    """Load the user defined padding oracle function from a Python module file."""
    mod = load_module_from_file(module_file_path)
    fn = getattr(mod, PLUGIN_FUNC_NAME, None)
    if fn is None:
        raise PluginLoadError(
            f"Plugin must define `{PLUGIN_FUNC_NAME}(iv: bytes, ciphertext: bytes) -> bool`"
        )

    params = list(inspect.signature(fn).parameters.values())
    if len(params) != 2 or any(
        p.kind not in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        for p in params
    ):
        raise PluginSignatureError(
            f"{PLUGIN_FUNC_NAME} must accept exactly two positional args: (iv: bytes, ciphertext: bytes)"
        )
    return fn


def load_ciphertext(file_path: str, format: CiphertextFormat) -> bytes:
    """Load the ciphertext from a file."""
    with open(file_path, "rb") as f:
        data = f.read()
    match format:
        case "b64" | "b64_urlsafe":
            return b64_decode(data.decode("ascii").strip())
        case "hex":
            return bytes.fromhex(data.decode("utf-8").strip())
        case "raw":
            return data
        case _:
            raise ValueError(f"Invalid ciphertext format: {format}")


def split_blocks(data: bytes, block_size: int) -> List[bytes]:
    """Split block-aligned data into block_size chunks."""
    if len(data) % block_size != 0:
        raise ValueError(f"data length {len(data)} is not a multiple of {block_size}")
    return [data[i:i + block_size] for i in range(0, len(data), block_size)]


def has_repeated_blocks(data: bytes, block_size: int) -> bool:
    blocks = [data[i:i + block_size] for i in range(0, len(data), block_size)]
    return len(set(blocks)) < len(blocks)


def printable(data: bytes) -> str:
    """Render bytes as text, replacing non-printable bytes with '.'."""
    return "".join(chr(b) if 32 <= b < 127 else "." for b in data)


def _as_bytes(
    data: Union[str, bytes, bytearray, memoryview],
    *,
    encoding: str = "utf-8",
) -> bytes:
    """Normalize values to type bytes."""
    if isinstance(data, str):
        return data.encode(encoding)
    return bytes(data)


def b64_encode(
    data: Union[str, bytes, bytearray, memoryview],
    *,
    urlsafe: bool = False,
    text_encoding: str = "utf-8",
) -> str:
    """Accepts str/bytes/etc and return a base64 string (standard or URL-safe)."""
    raw = _as_bytes(data, encoding=text_encoding)
    fn = base64.urlsafe_b64encode if urlsafe else base64.b64encode
    return fn(raw).decode("ascii")


def b64_decode(b64_text: str) -> bytes:
    """Decodes either standard or URL-safe b64. Tolerates missing '=' padding."""
    missing = len(b64_text) % 4
    if missing:
        b64_text += "=" * (4 - missing)

    try:
        return base64.b64decode(b64_text, validate=True)
    except binascii.Error:
        return base64.urlsafe_b64decode(b64_text)  # URL-safe fallback
