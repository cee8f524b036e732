from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

# =============================================================================
# Constants
# =============================================================================

INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1
UINT32_MASK = (1 << 32) - 1

# Shift counts are taken modulo the word width
SHIFT_MASK = 31


def wrap_int32(value: int) -> int:
    """Wrap an arbitrary Python int into the signed 32-bit range."""
    value &= UINT32_MASK
    return value - (1 << 32) if value > INT32_MAX else value


# =============================================================================
# Exceptions
# =============================================================================

class MdpuError(Exception):
    """Base exception for all machine errors. Fatal to the current run."""
    pass


class RegisterOutOfBounds(MdpuError):
    def __init__(self, register: int):
        super().__init__(f"Register index out of bounds: R{register}")
        self.register = register


class MemoryAddressOutOfBounds(MdpuError):
    def __init__(self, address: int):
        super().__init__(f"Memory address out of bounds: {address}")
        self.address = address


class DivisionByZero(MdpuError):
    pass


class StackOverflow(MdpuError):
    pass


class StackUnderflow(MdpuError):
    pass


class InstructionLimitExceeded(MdpuError):
    """Raised by the engine when the instruction-count ceiling is reached."""

    def __init__(self, limit: int, instruction_pointer: int):
        super().__init__(
            f"Maximum instruction count exceeded ({limit}) at instruction {instruction_pointer}, "
            f"possible infinite loop"
        )
        self.limit = limit
        self.instruction_pointer = instruction_pointer


class AllocationFailure(MdpuError):
    pass


class UnknownOpcode(MdpuError):
    def __init__(self, opcode: int):
        super().__init__(f"Unknown opcode: {opcode!r}")
        self.opcode = opcode


class InvalidJumpTarget(MdpuError):
    def __init__(self, target: int, program_size: int):
        super().__init__(f"Jump target {target} outside program of size {program_size}")
        self.target = target
        self.program_size = program_size


# =============================================================================
# Instruction Set
# =============================================================================

class Opcode(IntEnum):
    ADD = 0
    SUB = 1
    MUL = 2
    DIV = 3
    STORE = 4
    LOAD = 5
    LOAD_IMMEDIATE = 6
    PUSH = 7
    POP = 8
    JMP = 9
    JZ = 10
    JNZ = 11
    MOV = 12
    JE = 13
    JNE = 14
    AND = 15
    OR = 16
    XOR = 17
    NOT = 18
    SHL = 19
    SHR = 20
    CMP = 21
    TEST = 22
    HALT = 23


@dataclass(frozen=True)
class Instruction:
    """
    A single machine instruction.

    Field order matches the literal form ``(opcode, reg1, reg2, reg3, addr, immediate)``.
    Fields an opcode does not use are ignored.
    """
    opcode: int
    reg1: int = 0
    reg2: int = 0
    reg3: int = 0
    addr: int = 0
    immediate: int = 0

    def __str__(self) -> str:
        try:
            name = Opcode(self.opcode).name
        except ValueError:
            name = f"<{self.opcode}>"
        return (f"{name} r1={self.reg1} r2={self.reg2} r3={self.reg3} "
                f"addr={self.addr} imm={self.immediate}")


InstructionLike = Union[Instruction, Tuple[int, ...]]
Program = Tuple[Instruction, ...]


def to_program(items: Iterable[InstructionLike]) -> Program:
    """Build an immutable program from Instructions and/or literal tuples."""
    program = []
    for item in items:
        if isinstance(item, Instruction):
            program.append(item)
        else:
            program.append(Instruction(*item))
    return tuple(program)


# Register fields each opcode touches, in the order they are bounds-checked
REGISTER_OPERANDS: Dict[Opcode, Tuple[str, ...]] = {
    Opcode.ADD: ("reg1", "reg2", "reg3"),
    Opcode.SUB: ("reg1", "reg2", "reg3"),
    Opcode.MUL: ("reg1", "reg2", "reg3"),
    Opcode.DIV: ("reg1", "reg2", "reg3"),
    Opcode.STORE: ("reg1",),
    Opcode.LOAD: ("reg1",),
    Opcode.LOAD_IMMEDIATE: ("reg1",),
    Opcode.PUSH: ("reg1",),
    Opcode.POP: ("reg1",),
    Opcode.JMP: (),
    Opcode.JZ: ("reg1",),
    Opcode.JNZ: ("reg1",),
    Opcode.MOV: ("reg1", "reg2"),
    Opcode.JE: ("reg1", "reg2"),
    Opcode.JNE: ("reg1", "reg2"),
    Opcode.AND: ("reg1", "reg2", "reg3"),
    Opcode.OR: ("reg1", "reg2", "reg3"),
    Opcode.XOR: ("reg1", "reg2", "reg3"),
    Opcode.NOT: ("reg1", "reg2"),
    Opcode.SHL: ("reg1", "reg2", "reg3"),
    Opcode.SHR: ("reg1", "reg2", "reg3"),
    Opcode.CMP: ("reg1", "reg2"),
    Opcode.TEST: ("reg1", "reg2"),
    Opcode.HALT: (),
}

ADDRESS_OPCODES: FrozenSet[Opcode] = frozenset({Opcode.STORE, Opcode.LOAD})
DIRECT_JUMP_OPCODES: FrozenSet[Opcode] = frozenset({Opcode.JMP, Opcode.JZ, Opcode.JNZ})
COMPARE_JUMP_OPCODES: FrozenSet[Opcode] = frozenset({Opcode.JE, Opcode.JNE})
BINARY_OPCODES: FrozenSet[Opcode] = frozenset({
    Opcode.ADD, Opcode.SUB, Opcode.MUL, Opcode.DIV,
    Opcode.AND, Opcode.OR, Opcode.XOR, Opcode.SHL, Opcode.SHR,
})

# =============================================================================
# Control Flow
# =============================================================================

@dataclass(frozen=True)
class ControlFlow:
    """Base class for the decision an instruction hands back to the engine."""


@dataclass(frozen=True)
class Continue(ControlFlow):
    pass


@dataclass(frozen=True)
class Jump(ControlFlow):
    target: int


@dataclass(frozen=True)
class Halt(ControlFlow):
    pass


CONTINUE = Continue()
HALT = Halt()

# =============================================================================
# Machine State
# =============================================================================

@dataclass
class Machine:
    """
    Register file plus a flat memory buffer whose top end doubles as a stack.

    The stack grows downward: ``stack_pointer`` starts at ``memory_size - 1``
    and always names the next free slot. CMP and TEST write their result to
    register 0; ``flags`` mirrors that last result.
    """
    registers: List[int]
    memory: List[int]
    stack_pointer: int
    flags: Optional[int] = None

    @property
    def num_registers(self) -> int:
        return len(self.registers)

    @property
    def memory_size(self) -> int:
        return len(self.memory)

    def check_register(self, register: int) -> None:
        if register < 0 or register >= len(self.registers):
            raise RegisterOutOfBounds(register)

    def check_address(self, address: int) -> None:
        if address < 0 or address >= len(self.memory):
            raise MemoryAddressOutOfBounds(address)


def create_machine(num_registers: int, memory_size: int) -> Machine:
    """
    Create a zero-initialised machine.

    Raises:
        ValueError: If either dimension is not a positive integer
        AllocationFailure: If the buffers cannot be allocated
    """
    if num_registers < 1:
        raise ValueError(f"num_registers must be positive, got {num_registers}")
    if memory_size < 1:
        raise ValueError(f"memory_size must be positive, got {memory_size}")
    try:
        registers = [0] * num_registers
        memory = [0] * memory_size
    except MemoryError as e:
        raise AllocationFailure(
            f"Cannot allocate {num_registers} registers and {memory_size} memory cells"
        ) from e
    return Machine(registers=registers, memory=memory, stack_pointer=memory_size - 1)


# =============================================================================
# Opcode Semantics
# =============================================================================

def _check_registers(machine: Machine, *registers: int) -> None:
    for register in registers:
        machine.check_register(register)


def _divide(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


_BINARY_OPERATIONS = {
    Opcode.ADD: lambda a, b: a + b,
    Opcode.SUB: lambda a, b: a - b,
    Opcode.MUL: lambda a, b: a * b,
    Opcode.DIV: _divide,
    Opcode.AND: lambda a, b: a & b,
    Opcode.OR: lambda a, b: a | b,
    Opcode.XOR: lambda a, b: a ^ b,
    Opcode.SHL: lambda a, b: a << (b & SHIFT_MASK),
    Opcode.SHR: lambda a, b: a >> (b & SHIFT_MASK),
}


def binary_op(machine: Machine, instr: Instruction) -> ControlFlow:
    """reg3 = reg1 <op> reg2 for the arithmetic and bitwise opcodes."""
    _check_registers(machine, instr.reg1, instr.reg2, instr.reg3)
    regs = machine.registers
    a, b = regs[instr.reg1], regs[instr.reg2]
    if instr.opcode == Opcode.DIV and b == 0:
        raise DivisionByZero(f"Division by zero: R{instr.reg1} / R{instr.reg2}")
    regs[instr.reg3] = wrap_int32(_BINARY_OPERATIONS[Opcode(instr.opcode)](a, b))
    return CONTINUE


def store(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    machine.check_address(instr.addr)
    machine.memory[instr.addr] = machine.registers[instr.reg1]
    return CONTINUE


def load(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    machine.check_address(instr.addr)
    machine.registers[instr.reg1] = machine.memory[instr.addr]
    return CONTINUE


def load_immediate(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    machine.registers[instr.reg1] = wrap_int32(instr.immediate)
    return CONTINUE


def push(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    if machine.stack_pointer < 0:
        raise StackOverflow(f"Stack overflow on R{instr.reg1}")
    machine.memory[machine.stack_pointer] = machine.registers[instr.reg1]
    machine.stack_pointer -= 1
    return CONTINUE


def pop(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    if machine.stack_pointer >= len(machine.memory) - 1:
        raise StackUnderflow(f"Stack underflow on R{instr.reg1}")
    machine.stack_pointer += 1
    machine.registers[instr.reg1] = machine.memory[machine.stack_pointer]
    return CONTINUE


def mov(machine: Machine, instr: Instruction) -> ControlFlow:
    _check_registers(machine, instr.reg1, instr.reg2)
    machine.registers[instr.reg1] = machine.registers[instr.reg2]
    return CONTINUE


def bitwise_not(machine: Machine, instr: Instruction) -> ControlFlow:
    _check_registers(machine, instr.reg1, instr.reg2)
    machine.registers[instr.reg2] = ~machine.registers[instr.reg1]
    return CONTINUE


def compare(machine: Machine, instr: Instruction) -> ControlFlow:
    """CMP: register 0 = -1, 0 or 1 as reg1 is below, equal to or above reg2."""
    _check_registers(machine, instr.reg1, instr.reg2)
    a, b = machine.registers[instr.reg1], machine.registers[instr.reg2]
    result = (a > b) - (a < b)
    machine.registers[0] = result
    machine.flags = result
    return CONTINUE


def bit_test(machine: Machine, instr: Instruction) -> ControlFlow:
    """TEST: register 0 = reg1 & reg2."""
    _check_registers(machine, instr.reg1, instr.reg2)
    result = machine.registers[instr.reg1] & machine.registers[instr.reg2]
    machine.registers[0] = result
    machine.flags = result
    return CONTINUE


def jmp(machine: Machine, instr: Instruction) -> ControlFlow:
    return Jump(instr.addr)


def jz(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    return Jump(instr.addr) if machine.registers[instr.reg1] == 0 else CONTINUE


def jnz(machine: Machine, instr: Instruction) -> ControlFlow:
    machine.check_register(instr.reg1)
    return Jump(instr.addr) if machine.registers[instr.reg1] != 0 else CONTINUE


def je(machine: Machine, instr: Instruction) -> ControlFlow:
    _check_registers(machine, instr.reg1, instr.reg2)
    regs = machine.registers
    return Jump(instr.addr) if regs[instr.reg1] == regs[instr.reg2] else CONTINUE


def jne(machine: Machine, instr: Instruction) -> ControlFlow:
    _check_registers(machine, instr.reg1, instr.reg2)
    regs = machine.registers
    return Jump(instr.addr) if regs[instr.reg1] != regs[instr.reg2] else CONTINUE


def execute(machine: Machine, instruction: Instruction) -> ControlFlow:
    """
    Apply a single instruction to the machine.

    Returns:
        The control-flow decision for the engine

    Raises:
        UnknownOpcode: If the opcode is not part of the instruction set
        MdpuError: Any operand or stack failure; the machine is left unmodified
    """
    match instruction.opcode:
        case op if op in BINARY_OPCODES:
            return binary_op(machine, instruction)
        case Opcode.STORE:
            return store(machine, instruction)
        case Opcode.LOAD:
            return load(machine, instruction)
        case Opcode.LOAD_IMMEDIATE:
            return load_immediate(machine, instruction)
        case Opcode.PUSH:
            return push(machine, instruction)
        case Opcode.POP:
            return pop(machine, instruction)
        case Opcode.MOV:
            return mov(machine, instruction)
        case Opcode.NOT:
            return bitwise_not(machine, instruction)
        case Opcode.CMP:
            return compare(machine, instruction)
        case Opcode.TEST:
            return bit_test(machine, instruction)
        case Opcode.JMP:
            return jmp(machine, instruction)
        case Opcode.JZ:
            return jz(machine, instruction)
        case Opcode.JNZ:
            return jnz(machine, instruction)
        case Opcode.JE:
            return je(machine, instruction)
        case Opcode.JNE:
            return jne(machine, instruction)
        case Opcode.HALT:
            return HALT
        case _:
            raise UnknownOpcode(instruction.opcode)
