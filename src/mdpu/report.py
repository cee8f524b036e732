from typing import List

from .engine import Snapshot


def format_snapshot(snapshot: Snapshot) -> str:
    """
    Render a snapshot as ``R<i>: <value>`` and ``S<i>: <value>`` lines.

    S0 is the lowest captured address, i.e. the deepest remaining stack entry.
    """
    lines: List[str] = ["Registers:"]
    lines.extend(f"R{i}: {value}" for i, value in enumerate(snapshot.registers))
    lines.append("Stack:")
    lines.extend(f"S{i}: {value}" for i, value in enumerate(snapshot.stack))
    return "\n".join(lines)
