from typing import Literal, Optional, Sequence, TypeAlias

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from blockbreak.state_queue import SingleSlotQueue
from blockbreak.state_snapshot import StateSnapshot
from blockbreak.utils import printable


COLORS = {
    "current_byte": "bold yellow on black",
    "ciphertext": {
        "unsolved": "dark_red",
        "solved": "bright_red",
    },
    "plaintext": {
        "unsolved": "green",
        "solved": "spring_green2",
    },
}

BlockType: TypeAlias = Literal["ciphertext", "plaintext"]
BlockState: TypeAlias = Literal["unsolved", "solved", "current"]


def block_to_string(block: Sequence[Optional[int]], block_type: BlockType, block_state: BlockState, current_byte_index: int = -1) -> str:
    """Convert a block to hex string and apply coloring."""
    normalized_block = ["??" if b is None else f"{b:02x}" for b in block]

    if block_state == "current":
        hex_bytes = []
        for i, b in enumerate(normalized_block):
            if i < current_byte_index:
                style = COLORS[block_type]["unsolved"]
            elif i > current_byte_index:
                style = COLORS[block_type]["solved"]
            else:
                style = COLORS["current_byte"]
            hex_bytes.append(f"[{style}]{b}[/{style}]")
        return " ".join(hex_bytes)

    if block_state in ("solved", "unsolved"):
        style = COLORS[block_type][block_state]
        return " ".join(f"[{style}]{b}[/{style}]" for b in normalized_block)

    raise ValueError(f"Invalid block state: {block_state}")


def render_cbc(state: StateSnapshot) -> Table:
    title = f"Block {state.block_index_n + 1} / {len(state.plaintext)}  |  Byte {state.byte_index_i}  |  k={state.pad_length_k}  |  {state.queries} queries"
    ui_table = Table(title=title)
    ui_table.add_column("Block", justify="right")
    ui_table.add_column("Forged Cₙ₋₁′")
    ui_table.add_column("Plaintext Pₙ")

    for block_idx, (prime_block, plaintext_block) in enumerate(zip(state.ciphertext_prime, state.plaintext)):
        if state.complete or block_idx < state.block_index_n:
            prime_string = block_to_string(prime_block, "ciphertext", "solved")
            plaintext_string = block_to_string(plaintext_block, "plaintext", "solved")
        elif block_idx == state.block_index_n:
            prime_string = block_to_string(prime_block, "ciphertext", "current", state.byte_index_i)
            plaintext_string = block_to_string(plaintext_block, "plaintext", "current", state.byte_index_i)
        else:
            prime_string = block_to_string(prime_block, "ciphertext", "unsolved")
            plaintext_string = block_to_string(plaintext_block, "plaintext", "unsolved")

        ui_table.add_row(str(block_idx), prime_string, plaintext_string)

    return ui_table


def render_ecb(state: StateSnapshot) -> Panel:
    if state.attack == "ecb-probe":
        body = Text(f"phase: {state.phase}  |  queries: {state.queries}")
        return Panel(body, title="ECB structure probe")

    block_size = state.block_size or 16
    blocks = Table(show_header=True, show_edge=False)
    blocks.add_column("Block", justify="right", style="dim")
    blocks.add_column("Recovered")
    blocks.add_column("Text", style="green")
    recovered = state.recovered
    for n, start in enumerate(range(0, len(recovered), block_size)):
        chunk = recovered[start:start + block_size]
        blocks.add_row(str(n), block_to_string(tuple(chunk), "plaintext", "solved"), Text(printable(chunk)))

    status = Text(f"{len(recovered)} bytes  |  {state.queries} queries" + ("  |  done" if state.complete else ""))
    return Panel(Group(blocks, status), title="ECB secret recovery")


def render(state: Optional[StateSnapshot]):
    """Render the attack state snapshot."""
    if state is None:
        return Panel("Waiting for first update…", title="blockbreak", border_style="dim")
    if state.attack == "cbc":
        return render_cbc(state)
    return render_ecb(state)


def ui_loop(state_queue: SingleSlotQueue[StateSnapshot]) -> None:
    """Render snapshots until the attack closes the queue."""
    with Live(render(None), refresh_per_second=30, screen=False) as live:
        for state in state_queue:
            live.update(render(state))
