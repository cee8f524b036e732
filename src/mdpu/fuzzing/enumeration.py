"""
Enumeration-based test generation for the machine.

Systematically enumerates boundary programs instead of sampling them: every
register operand pushed just outside the register file, every memory access
pushed just outside memory, stacks filled past both ends, and the binary
operations over a fixed set of edge-case constants. Each generator is
deterministic and the combined suite is duplicate-free.
"""

import itertools
from typing import Iterator, List, Tuple

from mdpu.core import (
    INT32_MAX, INT32_MIN,
    ADDRESS_OPCODES, BINARY_OPCODES, REGISTER_OPERANDS,
    Instruction, Opcode, Program,
)


# ============================================================
# Configuration
# ============================================================

# Interesting constants for boundary value analysis
BOUNDARY_CONSTANTS = [
    0,           # Zero
    1,           # One
    -1,          # All bits set
    2,           # Small value
    31,          # Largest meaningful shift
    32,          # Shift count that wraps to 0
    INT32_MAX,   # Signed max
    INT32_MIN,   # Signed min (INT32_MIN / -1 overflows)
]

# Minimal interesting constants for smaller test suites
MINIMAL_CONSTANTS = [0, 1, -1, INT32_MIN]


def out_of_range(size: int) -> Tuple[int, int]:
    """The two indices just outside ``[0, size)``."""
    return -1, size


# ============================================================
# Bounds Tests
# ============================================================

def enumerate_register_bounds_programs(num_registers: int) -> Iterator[Program]:
    """
    One single-instruction program per (opcode, register operand, bad index).

    The other register operands are left at 0, so every program must fail
    with RegisterOutOfBounds naming the bad index.
    """
    for opcode, operands in REGISTER_OPERANDS.items():
        for operand in operands:
            for bad in out_of_range(num_registers):
                yield (Instruction(opcode, **{operand: bad}),)


def enumerate_address_bounds_programs(memory_size: int) -> Iterator[Program]:
    """STORE/LOAD programs that must fail with MemoryAddressOutOfBounds."""
    for opcode in sorted(ADDRESS_OPCODES):
        for bad in out_of_range(memory_size):
            yield (Instruction(opcode, reg1=0, addr=bad),)


# ============================================================
# Stack Tests
# ============================================================

def enumerate_stack_overflow_programs(memory_size: int) -> Iterator[Program]:
    """Programs pushing one more value than memory holds, from each register."""
    for register in (0, 1):
        yield tuple(Instruction(Opcode.PUSH, reg1=register) for _ in range(memory_size + 1))


def enumerate_stack_underflow_programs(memory_size: int) -> Iterator[Program]:
    """Programs popping one more value than was pushed."""
    for depth in range(min(memory_size, 3) + 1):
        pushes = [Instruction(Opcode.PUSH, reg1=0)] * depth
        pops = [Instruction(Opcode.POP, reg1=1)] * (depth + 1)
        yield tuple(pushes + pops)


def enumerate_division_by_zero_programs(constants: List[int] = MINIMAL_CONSTANTS) -> Iterator[Program]:
    """DIV by a zero register, for each dividend constant."""
    for dividend in constants:
        yield (
            Instruction(Opcode.LOAD_IMMEDIATE, reg1=0, immediate=dividend),
            Instruction(Opcode.LOAD_IMMEDIATE, reg1=1, immediate=0),
            Instruction(Opcode.DIV, reg1=0, reg2=1, reg3=2),
        )


# ============================================================
# Arithmetic Tests
# ============================================================

def enumerate_arithmetic_programs(constants: List[int] = BOUNDARY_CONSTANTS) -> Iterator[Program]:
    """
    Every binary opcode over every ordered pair of constants.

    Programs load the operands into r0/r1, write the result to r2 and halt.
    Pairs that divide by zero are skipped.
    """
    for opcode in sorted(BINARY_OPCODES):
        for a, b in itertools.product(constants, repeat=2):
            if opcode == Opcode.DIV and b == 0:
                continue
            yield (
                Instruction(Opcode.LOAD_IMMEDIATE, reg1=0, immediate=a),
                Instruction(Opcode.LOAD_IMMEDIATE, reg1=1, immediate=b),
                Instruction(opcode, reg1=0, reg2=1, reg3=2),
                Instruction(Opcode.HALT),
            )


# ============================================================
# Comprehensive Test Suites
# ============================================================

def generate_comprehensive_suite(num_registers: int = 3, memory_size: int = 4) -> Iterator[Program]:
    """
    Combine every enumeration above, removing duplicates.

    Programs that need scratch registers assume ``num_registers >= 3``.
    """
    seen = set()
    generators = [
        enumerate_arithmetic_programs(),
        enumerate_division_by_zero_programs(),
        enumerate_register_bounds_programs(num_registers),
        enumerate_address_bounds_programs(memory_size),
        enumerate_stack_overflow_programs(memory_size),
        enumerate_stack_underflow_programs(memory_size),
    ]
    for program in itertools.chain.from_iterable(generators):
        if program not in seen:
            seen.add(program)
            yield program
