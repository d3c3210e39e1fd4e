import logging
import random
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Optional, TypeVar

import click
import structlog

from blockbreak.algorithm.ecb_probe import probe
from blockbreak.algorithm.ecb_recover import recover_secret
from blockbreak.algorithm.mode_detect import detect_cipher_mode
from blockbreak.algorithm.padding_oracle_solver import recover_plaintext
from blockbreak.blackbox import (
    CBC_CHALLENGE_LINES,
    ROLLIN_SECRET,
    CbcPaddingOracle,
    EcbSuffixOracle,
    RandomModeOracle,
    deterministic_key,
)
from blockbreak.config import CBC_BLOCK_SIZE, DEMO_API_URL
from blockbreak.errors import BlockBreakError, PluginLoadError, PluginSignatureError
from blockbreak.oracle import (
    EncryptionOracle,
    FunctionPaddingOracle,
    HttpEncryptionOracle,
    HttpPaddingOracle,
    PaddingOracle,
    fetch_cbc_challenge,
)
from blockbreak.state_queue import SingleSlotQueue
from blockbreak.state_snapshot import AttackKind, SnapshotPublisher, StateSnapshot
from blockbreak.ui import ui_loop
from blockbreak.utils import CiphertextFormat, load_ciphertext, load_oracle_fn, printable

T = TypeVar("T")


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


@contextmanager
def attack_errors():
    """Report attack failures as a clean CLI error instead of a traceback."""
    try:
        yield
    except BlockBreakError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e


def run_attack(attack: Callable[[SnapshotPublisher], T], kind: AttackKind, ui: bool) -> T:
    """Run an attack, optionally in a worker thread feeding the live UI."""
    if not ui:
        return attack(SnapshotPublisher(kind))

    state_queue: SingleSlotQueue[StateSnapshot] = SingleSlotQueue()
    publisher = SnapshotPublisher(kind, state_queue)

    def worker() -> T:
        try:
            return attack(publisher)
        finally:
            # Always close the queue so the UI can exit
            state_queue.close()

    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(worker)
        try:
            ui_loop(state_queue)
        except KeyboardInterrupt:
            state_queue.close()
            raise
        return future.result()


def crack_ecb(oracle: EncryptionOracle, ui: bool) -> bytes:
    structure = run_attack(lambda publisher: probe(oracle, publisher=publisher), "ecb-probe", ui)
    click.echo(
        f"block size: {structure.block_size}  "
        f"attacker offset: {structure.attacker_offset}  "
        f"prebuffer: {structure.prebuffer_len}"
    )
    return run_attack(lambda publisher: recover_secret(oracle, structure, publisher=publisher), "ecb-recover", ui)


def crack_cbc(iv: bytes, ciphertext: bytes, oracle: PaddingOracle, ui: bool) -> bytes:
    return run_attack(lambda publisher: recover_plaintext(iv, ciphertext, oracle, publisher=publisher), "cbc", ui)


@click.group()
@click.option("--ui/--no-ui", default=True, help="Show the live progress view.")
@click.option("--verbose", "-v", is_flag=True, help="Log every step.")
@click.pass_context
def cli(ctx: click.Context, ui: bool, verbose: bool):
    configure_logging(verbose)
    ctx.obj = {"ui": ui}


@cli.command("demo-ecb")
@click.option("--prefix/--no-prefix", default=False, help="Prepend a random-length secret prefix.")
@click.option("--seed", type=int, default=None, help="Seed for the random prefix.")
@click.pass_obj
def demo_ecb(obj: dict, prefix: bool, seed: Optional[int]):
    """Recover the secret suffix of a local AES-ECB oracle."""
    key = deterministic_key()
    if prefix:
        oracle = EcbSuffixOracle.with_random_prefix(ROLLIN_SECRET, key=key, rng=random.Random(seed))
    else:
        oracle = EcbSuffixOracle(key, ROLLIN_SECRET)

    with attack_errors():
        secret = crack_ecb(oracle, obj["ui"])
    click.echo(secret.decode("utf-8", errors="replace"), nl=False)


@cli.command("demo-cbc")
@click.option("--line", "line_index", type=click.IntRange(0, len(CBC_CHALLENGE_LINES) - 1), default=None,
              help="Only attack this challenge line.")
@click.option("--seed", type=int, default=999, help="Seed for the oracle key.")
@click.pass_obj
def demo_cbc(obj: dict, line_index: Optional[int], seed: int):
    """Decrypt CBC challenge lines through a local padding oracle."""
    oracle = CbcPaddingOracle(key=deterministic_key(seed=seed))
    lines = CBC_CHALLENGE_LINES if line_index is None else [CBC_CHALLENGE_LINES[line_index]]

    for line in lines:
        iv, ciphertext = oracle.encrypt(line)
        with attack_errors():
            plaintext = crack_cbc(iv, ciphertext, oracle, obj["ui"])
        click.echo(printable(plaintext))


@cli.command("crack-ecb")
@click.option("--url", envvar="BLOCKBREAK_ECB_URL", default=f"{DEMO_API_URL}/ecb/encrypt", show_default=True,
              help="ECB encryption endpoint.")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write the recovered secret to this file.")
@click.pass_obj
def crack_ecb_command(obj: dict, url: str, output: Optional[str]):
    """Probe and recover the secret suffix of a remote ECB oracle."""
    with attack_errors():
        secret = crack_ecb(HttpEncryptionOracle(url), obj["ui"])

    if output:
        with open(output, "wb") as f:
            f.write(secret)
    else:
        click.echo(secret.decode("utf-8", errors="replace"), nl=False)


@cli.command("crack-cbc")
@click.option("--url", envvar="BLOCKBREAK_VALIDATE_URL", default=f"{DEMO_API_URL}/cbc/validate", show_default=True,
              help="Padding validation endpoint.")
@click.option("--oracle-fn", "-g", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Python file defining padding_valid(iv, ciphertext) -> bool; replaces --url.")
@click.option("--ciphertext-path", "-c", type=click.Path(exists=True, dir_okay=False), default=None,
              help="IV-prefixed ciphertext file. Fetched from --challenge-url when omitted.")
@click.option("--ciphertext-format", "-f", type=click.Choice(["b64", "b64_urlsafe", "hex", "raw"]), default="b64")
@click.option("--challenge-url", envvar="BLOCKBREAK_CHALLENGE_URL", default=f"{DEMO_API_URL}/cbc/challenge",
              show_default=True)
@click.pass_obj
def crack_cbc_command(
    obj: dict,
    url: str,
    oracle_fn: Optional[str],
    ciphertext_path: Optional[str],
    ciphertext_format: CiphertextFormat,
    challenge_url: str,
):
    """Decrypt a CBC ciphertext through a padding oracle."""
    with attack_errors():
        if ciphertext_path:
            try:
                data = load_ciphertext(ciphertext_path, ciphertext_format)
            except ValueError as e:
                raise click.BadParameter(
                    f"not valid {ciphertext_format}: {e}", param_hint="--ciphertext-path"
                ) from e
            iv, ciphertext = data[:CBC_BLOCK_SIZE], data[CBC_BLOCK_SIZE:]
        else:
            iv, ciphertext = fetch_cbc_challenge(challenge_url)

        if oracle_fn:
            try:
                oracle: PaddingOracle = FunctionPaddingOracle(load_oracle_fn(oracle_fn))
            except (PluginLoadError, PluginSignatureError) as e:
                raise click.BadParameter(str(e), param_hint="--oracle-fn") from e
        else:
            oracle = HttpPaddingOracle(url)

        plaintext = crack_cbc(iv, ciphertext, oracle, obj["ui"])

    if ciphertext_path:
        plaintext_path = f"{ciphertext_path}.plaintext"
        with open(plaintext_path, "wb") as f:
            f.write(plaintext)
        click.echo(f"plaintext written to {plaintext_path}")
    else:
        click.echo(printable(plaintext))


@cli.command("detect-mode")
@click.option("--samples", "-n", type=click.IntRange(min=1), default=100, show_default=True)
@click.option("--seed", type=int, default=None)
def detect_mode(samples: int, seed: Optional[int]):
    """Check ECB/CBC detection against an oracle that picks a random mode per call."""
    oracle = RandomModeOracle(rng=random.Random(seed))
    correct = 0
    for _ in range(samples):
        guess = detect_cipher_mode(oracle)
        correct += guess == oracle.last_mode
    click.echo(f"{correct}/{samples} modes detected correctly")


@cli.command("demo-api")
@click.option("--host", default="127.0.0.1", help="Host to bind the server to")
@click.option("--port", default=8000, help="Port to bind the server to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def demo_api(host: str, port: int, reload: bool):
    """Start the demo API server with ECB and CBC padding oracles."""
    try:
        import uvicorn
        from demo_api.api import app
    except ImportError as e:
        click.echo(f"Error: Demo API dependencies not available: {e}")
        click.echo("Install with: pip install 'blockbreak[demo]'")
        raise click.Abort()

    click.echo(f"Starting demo API server on http://{host}:{port}")
    click.echo("Available endpoints:")
    click.echo("  - POST /api/ecb/encrypt        - ECB oracle with a secret suffix")
    click.echo("  - POST /api/ecb-prefix/encrypt - ECB oracle with a random prefix and a secret suffix")
    click.echo("  - GET  /api/cbc/challenge      - CBC ciphertext to decrypt")
    click.echo("  - POST /api/cbc/validate       - Padding oracle")
    click.echo("\nPress Ctrl+C to stop the server")

    if reload:
        # Use import string for reload mode
        uvicorn.run("demo_api.api:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port, reload=False)


if __name__ == "__main__":
    cli()
