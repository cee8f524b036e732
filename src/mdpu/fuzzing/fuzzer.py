"""
Random-program fuzzer for the machine.

Generates random instruction sequences, runs each on a fresh machine and
checks the outcome:
- Runs that succeed must produce a snapshot that satisfies the machine's
  invariants (register count, stack length, 32-bit cell values).
- Runs that fail must fail with a machine error; anything else is a crash.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
import random
from typing import Callable, Dict, Optional

from mdpu.core import (
    INT32_MAX, INT32_MIN,
    Instruction, MdpuError, Opcode, Program, create_machine,
)
from mdpu.engine import Snapshot, run


# =============================================================================
# Configuration Constants
# =============================================================================

# Structure-aware generation probabilities
PROB_ARITHMETIC = 0.30
PROB_MEMORY = 0.15
PROB_STACK = 0.15
PROB_JUMP = 0.15
PROB_COMPARE = 0.10
PROB_LOAD_IMMEDIATE = 0.12
PROB_HALT = 0.01
PROB_INVALID_OPCODE = 0.02

# Chance that an operand is drawn just outside its valid range
PROB_OUT_OF_RANGE_OPERAND = 0.05

# Mixed strategy probabilities
PROB_RANDOM_STRATEGY = 0.3
PROB_STRUCTURED_STRATEGY = 0.7


@dataclass
class GeneratorConfig:
    """Configuration for program generators and the machine they run on."""
    max_instructions: int = 12
    num_registers: int = 4
    memory_size: int = 8
    max_instruction_count: int = 200
    max_immediate: int = 64


DEFAULT_CONFIG = GeneratorConfig()


# =============================================================================
# Instruction Selection
# =============================================================================

class InstructionChoice(Enum):
    """Instruction families for structure-aware generation."""
    ARITHMETIC = "arithmetic"
    MEMORY = "memory"
    STACK = "stack"
    JUMP = "jump"
    COMPARE = "compare"
    LOAD_IMMEDIATE = "load_immediate"
    HALT = "halt"
    INVALID = "invalid"


FAMILY_OPCODES: Dict[InstructionChoice, tuple] = {
    InstructionChoice.ARITHMETIC: (
        Opcode.ADD, Opcode.SUB, Opcode.MUL, Opcode.DIV, Opcode.AND, Opcode.OR,
        Opcode.XOR, Opcode.NOT, Opcode.SHL, Opcode.SHR, Opcode.MOV,
    ),
    InstructionChoice.MEMORY: (Opcode.STORE, Opcode.LOAD),
    InstructionChoice.STACK: (Opcode.PUSH, Opcode.POP),
    InstructionChoice.JUMP: (Opcode.JMP, Opcode.JZ, Opcode.JNZ, Opcode.JE, Opcode.JNE),
    InstructionChoice.COMPARE: (Opcode.CMP, Opcode.TEST),
    InstructionChoice.LOAD_IMMEDIATE: (Opcode.LOAD_IMMEDIATE,),
    InstructionChoice.HALT: (Opcode.HALT,),
}


def choose_instruction() -> InstructionChoice:
    """Choose instruction family based on configured probabilities."""
    weights = [
        (InstructionChoice.ARITHMETIC, int(PROB_ARITHMETIC * 100)),
        (InstructionChoice.MEMORY, int(PROB_MEMORY * 100)),
        (InstructionChoice.STACK, int(PROB_STACK * 100)),
        (InstructionChoice.JUMP, int(PROB_JUMP * 100)),
        (InstructionChoice.COMPARE, int(PROB_COMPARE * 100)),
        (InstructionChoice.LOAD_IMMEDIATE, int(PROB_LOAD_IMMEDIATE * 100)),
        (InstructionChoice.HALT, int(PROB_HALT * 100)),
        (InstructionChoice.INVALID, int(PROB_INVALID_OPCODE * 100)),
    ]
    choices, probs = zip(*weights)
    return random.choices(choices, weights=probs)[0]


def _operand(size: int) -> int:
    """An index in ``[0, size)``, occasionally one step outside it."""
    if random.random() < PROB_OUT_OF_RANGE_OPERAND:
        return random.choice([-1, size])
    return random.randint(0, size - 1)


# =============================================================================
# Program Generators
# =============================================================================

def generate_random_program(config: GeneratorConfig = DEFAULT_CONFIG) -> Program:
    """Completely random fields - no structure consideration."""
    length = random.randint(1, config.max_instructions)
    return tuple(
        Instruction(
            opcode=random.randint(0, len(Opcode) + 2),
            reg1=random.randint(-1, config.num_registers),
            reg2=random.randint(-1, config.num_registers),
            reg3=random.randint(-1, config.num_registers),
            addr=random.randint(-1, max(config.memory_size, length)),
            immediate=random.randint(INT32_MIN, INT32_MAX),
        )
        for _ in range(length)
    )


def generate_structure_aware_program(config: GeneratorConfig = DEFAULT_CONFIG) -> Program:
    """
    Generate mostly well-formed programs.

    Operands are drawn in range with a small chance of stepping outside it,
    and jump targets stay within the program (including one past its end),
    so most runs get past their first few instructions.
    """
    length = random.randint(1, config.max_instructions)
    program = []

    for _ in range(length):
        choice = choose_instruction()

        if choice == InstructionChoice.INVALID:
            program.append(Instruction(random.randint(len(Opcode), 0xFF)))
            continue

        opcode = random.choice(FAMILY_OPCODES[choice])
        if opcode in FAMILY_OPCODES[InstructionChoice.JUMP]:
            addr = random.randint(0, length)
        else:
            addr = _operand(config.memory_size)

        program.append(Instruction(
            opcode=opcode,
            reg1=_operand(config.num_registers),
            reg2=_operand(config.num_registers),
            reg3=_operand(config.num_registers),
            addr=addr,
            immediate=random.randint(-config.max_immediate, config.max_immediate),
        ))

    return tuple(program)


def generate_mixed_strategy_program(config: GeneratorConfig = DEFAULT_CONFIG) -> Program:
    """Randomly pick between the random and structure-aware generators."""
    if random.random() < PROB_RANDOM_STRATEGY:
        return generate_random_program(config)
    return generate_structure_aware_program(config)


# Generator registry for dispatch
GENERATORS: Dict[str, Callable[[GeneratorConfig], Program]] = {
    "random": generate_random_program,
    "structured": generate_structure_aware_program,
    "mixed": generate_mixed_strategy_program,
}


# =============================================================================
# Execution Results
# =============================================================================

@dataclass(frozen=True)
class ExecutionResult:
    """Base class for execution results - used as a union type."""


@dataclass(frozen=True)
class ExceptionThrown(ExecutionResult):
    reason: str


@dataclass(frozen=True)
class Crash(ExecutionResult):
    reason: str


@dataclass(frozen=True)
class Success(ExecutionResult):
    snapshot: Snapshot


def execute_program_safely(program: Program, config: GeneratorConfig = DEFAULT_CONFIG) -> ExecutionResult:
    """Run a program on a fresh machine and classify the outcome."""
    machine = create_machine(config.num_registers, config.memory_size)
    try:
        return Success(run(machine, program, config.max_instruction_count))
    except MdpuError as e:
        return ExceptionThrown(type(e).__name__)
    except Exception as e:
        return Crash(f"machine raised exception: {repr(e)}")


def check_invariants(result: ExecutionResult, config: GeneratorConfig = DEFAULT_CONFIG) -> Optional[str]:
    """Return a description of the first violated invariant, or None."""
    if not isinstance(result, Success):
        return None
    snapshot = result.snapshot
    if len(snapshot.registers) != config.num_registers:
        return f"snapshot has {len(snapshot.registers)} registers, expected {config.num_registers}"
    if len(snapshot.stack) > config.memory_size:
        return f"snapshot stack of {len(snapshot.stack)} exceeds memory size {config.memory_size}"
    for value in snapshot.registers + snapshot.stack:
        if not INT32_MIN <= value <= INT32_MAX:
            return f"value {value} outside 32-bit range"
    return None


# =============================================================================
# Statistics Tracking
# =============================================================================

@dataclass
class FuzzingStatistics:
    """Tracks fuzzing run statistics."""
    total_tests: int = 0
    successes: int = 0
    crashes: int = 0
    invariant_violations: int = 0
    errors: Counter = field(default_factory=Counter)

    @property
    def bugs_found(self) -> int:
        return self.crashes + self.invariant_violations

    @property
    def success_rate(self) -> float:
        return (self.successes / self.total_tests * 100) if self.total_tests > 0 else 0.0

    def record_test(self, result: ExecutionResult, violation: Optional[str]) -> None:
        """Record results of a single test."""
        self.total_tests += 1

        if isinstance(result, Success):
            self.successes += 1
        elif isinstance(result, ExceptionThrown):
            self.errors[result.reason] += 1
        elif isinstance(result, Crash):
            self.crashes += 1

        if violation is not None:
            self.invariant_violations += 1

    def print_summary(self) -> None:
        """Print formatted summary of results."""
        print("\n" + "=" * 60)
        print("Fuzzer Summary")
        print("-" * 40)
        print(f"Total tests run:           {self.total_tests}")
        print(f"Completed runs:            {self.successes} ({self.success_rate:.1f}%)")
        for reason, count in self.errors.most_common():
            print(f"  {reason + ':':<25}{count}")
        print(f"Crashes:                   {self.crashes}")
        print(f"Invariant violations:      {self.invariant_violations}")

        if self.bugs_found == 0:
            print("\nNo bugs detected!")


# =============================================================================
# Bug Reporting
# =============================================================================

def report_bug(test_num: int, program: Program, result: ExecutionResult, violation: Optional[str]) -> None:
    """Print detailed bug report."""
    print(f"\nTest {test_num}: Bug found")
    for index, instr in enumerate(program):
        print(f"    {index:3d}: {instr}")
    print(f"  Result:    {result}")
    if violation is not None:
        print(f"  Violation: {violation}")


def print_header(num_tests: int, generator: str) -> None:
    """Print fuzzer run header."""
    print(f"MDPU Fuzzer - Running {num_tests} tests")
    print(f"Generator: {generator}")
    print("=" * 60)


# =============================================================================
# Fuzzer Main Logic
# =============================================================================

def run_fuzzer(
    num_tests: int = 1000,
    seed: Optional[int] = None,
    generator: str = "mixed",
    config: GeneratorConfig = DEFAULT_CONFIG,
) -> FuzzingStatistics:
    """
    Run the fuzzer for a specified number of tests.

    Args:
        num_tests: Number of random programs to generate
        seed: Random seed for reproducibility
        generator: Generator type: "random", "structured" or "mixed"
        config: Program and machine sizes

    Returns:
        FuzzingStatistics object with results
    """
    if seed is not None:
        random.seed(seed)

    generator_func = GENERATORS.get(generator, generate_mixed_strategy_program)
    stats = FuzzingStatistics()

    print_header(num_tests, generator)

    for i in range(num_tests):
        program = generator_func(config)
        result = execute_program_safely(program, config)
        violation = check_invariants(result, config)

        stats.record_test(result, violation)

        if isinstance(result, Crash) or violation is not None:
            report_bug(i + 1, program, result, violation)

    stats.print_summary()
    return stats


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Fuzzer for the MDPU machine")
    parser.add_argument(
        "-n", "--num-tests",
        type=int,
        default=1000,
        help="Number of random programs to run (default: 1000)"
    )
    parser.add_argument(
        "-s", "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility"
    )
    parser.add_argument(
        "-g", "--generator",
        type=str,
        default="mixed",
        choices=list(GENERATORS),
        help="Generator type (default: %(default)s)"
    )
    parser.add_argument(
        "--registers",
        type=int,
        default=DEFAULT_CONFIG.num_registers,
        help="Registers per machine (default: %(default)s)"
    )
    parser.add_argument(
        "--memory",
        type=int,
        default=DEFAULT_CONFIG.memory_size,
        help="Memory cells per machine (default: %(default)s)"
    )

    args = parser.parse_args()

    run_fuzzer(
        num_tests=args.num_tests,
        seed=args.seed,
        generator=args.generator,
        config=GeneratorConfig(num_registers=args.registers, memory_size=args.memory),
    )
