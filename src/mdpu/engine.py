"""
Execution engine: the fetch/dispatch loop and final-state snapshots.

Jump handling follows two landing rules. JMP, JZ and JNZ move the instruction
pointer straight to their target. JE and JNE still get the ordinary +1 advance
after jumping, so a taken JE/JNE resumes at ``target + 1``.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .core import (
    COMPARE_JUMP_OPCODES,
    Halt, Jump, Continue,
    Instruction, Machine, MdpuError, Opcode,
    InstructionLimitExceeded, InvalidJumpTarget,
    execute, to_program,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_INSTRUCTION_COUNT = 1000


# =============================================================================
# Snapshot
# =============================================================================

@dataclass(frozen=True)
class Snapshot:
    """Immutable copy of the registers and in-use stack after a run."""
    registers: Tuple[int, ...]
    stack: Tuple[int, ...]
    flags: Optional[int] = None

    @property
    def stack_size(self) -> int:
        return len(self.stack)


def take_snapshot(machine: Machine) -> Snapshot:
    """
    Copy the final state out of a machine.

    The stack slice covers addresses ``stack_pointer + 1`` through
    ``memory_size - 1`` in ascending order, so index 0 is the deepest entry.
    """
    return Snapshot(
        registers=tuple(machine.registers),
        stack=tuple(machine.memory[machine.stack_pointer + 1:]),
        flags=machine.flags,
    )


# =============================================================================
# Execution
# =============================================================================

def _resolve_jump(instruction: Instruction, target: int, program_size: int) -> int:
    if not 0 <= target <= program_size:
        raise InvalidJumpTarget(target, program_size)
    if instruction.opcode in COMPARE_JUMP_OPCODES:
        return target + 1
    return target


def execute_program(machine: Machine, program: Sequence[Instruction],
                    max_instruction_count: int = DEFAULT_MAX_INSTRUCTION_COUNT) -> int:
    """
    Run a program on the machine until HALT or until it falls off the end.

    Args:
        machine: Machine to mutate
        program: Ordered instruction sequence; indices are jump targets
        max_instruction_count: Ceiling on dispatched instructions

    Returns:
        Number of instructions dispatched (HALT not included)

    Raises:
        InstructionLimitExceeded: When the ceiling is reached before the program ends
        MdpuError: Any failure raised by an instruction
    """
    if max_instruction_count < 1:
        raise ValueError(f"max_instruction_count must be positive, got {max_instruction_count}")

    program_size = len(program)
    instruction_pointer = 0
    instruction_count = 0
    trace = logger.isEnabledFor(logging.DEBUG)

    while instruction_pointer < program_size:
        instr = program[instruction_pointer]
        if instr.opcode != Opcode.HALT and instruction_count >= max_instruction_count:
            raise InstructionLimitExceeded(max_instruction_count, instruction_pointer)

        if trace:
            logger.debug("[%d] %s", instruction_pointer, instr)

        flow = execute(machine, instr)

        match flow:
            case Halt():
                logger.debug("HALT at instruction %d", instruction_pointer)
                break
            case Jump(target=target):
                instruction_pointer = _resolve_jump(instr, target, program_size)
            case Continue():
                instruction_pointer += 1
        instruction_count += 1

    return instruction_count


def run(machine: Machine, program: Sequence[Instruction],
        max_instruction_count: int = DEFAULT_MAX_INSTRUCTION_COUNT) -> Snapshot:
    """
    Execute a program and return the snapshot of the final state.

    Literal instruction tuples are accepted alongside Instruction objects.
    No snapshot is produced if the run fails; the error propagates to the caller.
    """
    program = to_program(program)
    logger.debug(
        "Running %d instructions on %d registers / %d memory cells (limit %d)",
        len(program), machine.num_registers, machine.memory_size, max_instruction_count,
    )
    try:
        executed = execute_program(machine, program, max_instruction_count)
    except MdpuError as e:
        logger.debug("Run aborted: %s", e)
        raise
    logger.debug("Run finished after %d instructions, stack pointer %d",
                 executed, machine.stack_pointer)
    return take_snapshot(machine)
