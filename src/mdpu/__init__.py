"""MDPU: a small register-and-memory machine emulator."""

from .core import (
    # Constants
    INT32_MIN, INT32_MAX, wrap_int32,
    # Instructions
    Opcode, Instruction, Program, to_program,
    REGISTER_OPERANDS, ADDRESS_OPCODES, DIRECT_JUMP_OPCODES, COMPARE_JUMP_OPCODES,
    # Control flow
    ControlFlow, Continue, Jump, Halt,
    # Exceptions
    MdpuError, RegisterOutOfBounds, MemoryAddressOutOfBounds, DivisionByZero,
    StackOverflow, StackUnderflow, InstructionLimitExceeded, AllocationFailure,
    UnknownOpcode, InvalidJumpTarget,
    # Machine State & Semantics
    Machine, create_machine, execute,
)

from .engine import (
    DEFAULT_MAX_INSTRUCTION_COUNT,
    Snapshot, take_snapshot, execute_program, run,
)

from .config import DimensionError, MachineConfig, parse_dimensions
from .report import format_snapshot

__version__ = "0.1.0"
