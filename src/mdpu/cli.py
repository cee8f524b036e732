"""
Command line entry point: build a machine from dimension strings, run the
example program on it and print the final registers and stack.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import DimensionError, MachineConfig
from .core import MdpuError, Opcode, to_program
from .engine import DEFAULT_MAX_INSTRUCTION_COUNT, run
from .report import format_snapshot

logger = logging.getLogger(__name__)

# (opcode, reg1, reg2, reg3, addr, immediate)
EXAMPLE_PROGRAM = to_program([
    (Opcode.LOAD_IMMEDIATE, 0, 0, 0, 0, 10),
    (Opcode.LOAD_IMMEDIATE, 1, 0, 0, 0, 20),
    (Opcode.ADD, 0, 1, 2, 0, 0),
    (Opcode.STORE, 2, 0, 0, 0, 0),
    (Opcode.HALT, 0, 0, 0, 0, 0),
])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdpu",
        description="Run the example program on a register-and-memory machine",
    )
    parser.add_argument(
        "registers",
        help="Register file dimensions, e.g. '4x4' for 16 registers"
    )
    parser.add_argument(
        "memory",
        help="Memory dimensions, e.g. '8x8' for 64 cells"
    )
    parser.add_argument(
        "-n", "--max-instructions",
        type=int,
        default=DEFAULT_MAX_INSTRUCTION_COUNT,
        help="Instruction-count ceiling (default: %(default)s)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Trace every dispatched instruction"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = MachineConfig.from_dimensions(args.registers, args.memory, args.max_instructions)
        machine = config.create_machine()
        snapshot = run(machine, EXAMPLE_PROGRAM, config.max_instruction_count)
    except (MdpuError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(format_snapshot(snapshot))
    return 0


if __name__ == "__main__":
    sys.exit(main())
