"""
Tests for the execution engine and snapshot extraction.

Run with: pytest tests/test_engine.py
"""

import logging

from mdpu import (
    Opcode, Instruction,
    InstructionLimitExceeded, InvalidJumpTarget, UnknownOpcode,
    DivisionByZero, StackOverflow,
    Snapshot, create_machine, execute_program, run, take_snapshot,
)

LI = Opcode.LOAD_IMMEDIATE


def test_end_to_end_example():
    machine = create_machine(3, 4)
    program = [
        (LI, 0, 0, 0, 0, 10),
        (LI, 1, 0, 0, 0, 20),
        (Opcode.ADD, 0, 1, 2, 0, 0),
        (Opcode.STORE, 2, 0, 0, 0, 0),
        (Opcode.HALT, 0, 0, 0, 0, 0),
    ]
    snapshot = run(machine, program, 1000)
    assert snapshot.registers == (10, 20, 30)
    assert snapshot.stack == ()
    assert snapshot.flags is None
    assert machine.stack_pointer == 3
    assert machine.memory[0] == 30
    print("✓ End-to-end: 10 + 20 = 30")


def test_program_runs_off_the_end():
    machine = create_machine(2, 2)
    snapshot = run(machine, [Instruction(LI, reg1=1, immediate=4)])
    assert snapshot.registers == (0, 4)


def test_empty_program():
    snapshot = run(create_machine(1, 1), [])
    assert snapshot == Snapshot(registers=(0,), stack=())


def test_halt_stops_execution():
    machine = create_machine(2, 2)
    snapshot = run(machine, [
        Instruction(LI, reg1=0, immediate=1),
        Instruction(Opcode.HALT),
        Instruction(LI, reg1=1, immediate=2),
    ])
    assert snapshot.registers == (1, 0)


def test_snapshot_stack_contents():
    machine = create_machine(2, 5)
    snapshot = run(machine, [
        Instruction(LI, reg1=0, immediate=1),
        Instruction(Opcode.PUSH, reg1=0),
        Instruction(LI, reg1=0, immediate=2),
        Instruction(Opcode.PUSH, reg1=0),
        Instruction(LI, reg1=0, immediate=3),
        Instruction(Opcode.PUSH, reg1=0),
        Instruction(Opcode.POP, reg1=1),
    ])
    # Ascending addresses: S0 is the deepest remaining entry
    assert snapshot.stack == (2, 1)
    assert snapshot.stack_size == len(machine.memory) - machine.stack_pointer - 1
    assert snapshot.registers == (3, 3)
    print("✓ Snapshot stack in ascending address order")


def test_snapshot_is_independent():
    machine = create_machine(2, 2)
    machine.registers[0] = 7
    snapshot = take_snapshot(machine)
    machine.registers[0] = 8
    assert snapshot.registers == (7, 0)
    try:
        snapshot.registers = (1, 1)
        assert False, "Snapshot should be frozen"
    except AttributeError:
        pass


def test_snapshot_flags_mirror_compare():
    machine = create_machine(3, 2)
    snapshot = run(machine, [
        Instruction(LI, reg1=1, immediate=2),
        Instruction(LI, reg1=2, immediate=5),
        Instruction(Opcode.CMP, reg1=1, reg2=2),
    ])
    assert snapshot.registers == (-1, 2, 5)
    assert snapshot.flags == -1


def test_liveness_guard():
    machine = create_machine(1, 1)
    program = [Instruction(Opcode.JMP, addr=0)]

    # Exactly five dispatches are allowed before the guard fires
    try:
        run(machine, program, max_instruction_count=5)
        assert False, "Should have raised InstructionLimitExceeded"
    except InstructionLimitExceeded as e:
        assert e.limit == 5
        assert e.instruction_pointer == 0

    counted = create_machine(1, 1)
    assert execute_program(counted, [Instruction(Opcode.JMP, addr=i + 1) for i in range(5)], 5) == 5
    print("✓ JMP-to-self stopped after 5 dispatches")


def test_instruction_limit_counts_straight_line_code():
    machine = create_machine(1, 1)
    program = [Instruction(LI, reg1=0, immediate=i) for i in range(4)]
    assert run(machine, program, 4).registers == (3,)

    machine = create_machine(1, 1)
    try:
        run(machine, program, 3)
        assert False, "Should have raised InstructionLimitExceeded"
    except InstructionLimitExceeded as e:
        assert e.instruction_pointer == 3


def test_halt_is_not_limited():
    machine = create_machine(1, 1)
    program = [Instruction(LI, reg1=0, immediate=1), Instruction(Opcode.HALT)]
    assert run(machine, program, 1).registers == (1,)


def test_max_instruction_count_must_be_positive():
    try:
        run(create_machine(1, 1), [], 0)
        assert False, "Should have raised ValueError"
    except ValueError:
        pass


def test_direct_jumps_land_on_target():
    machine = create_machine(2, 2)
    snapshot = run(machine, [
        Instruction(Opcode.JMP, addr=2),
        Instruction(LI, reg1=0, immediate=111),
        Instruction(LI, reg1=1, immediate=1),
    ])
    assert snapshot.registers == (0, 1)

    # JZ on a zero register jumps, JNZ on it falls through
    machine = create_machine(3, 2)
    snapshot = run(machine, [
        Instruction(Opcode.JNZ, reg1=0, addr=3),
        Instruction(Opcode.JZ, reg1=0, addr=3),
        Instruction(LI, reg1=1, immediate=111),
        Instruction(LI, reg1=2, immediate=1),
    ])
    assert snapshot.registers == (0, 0, 1)


def test_je_lands_one_past_target():
    machine = create_machine(3, 2)
    snapshot = run(machine, [
        Instruction(Opcode.JE, reg1=0, reg2=1, addr=4),
        Instruction(LI, reg1=2, immediate=1),
        Instruction(LI, reg1=2, immediate=2),
        Instruction(LI, reg1=2, immediate=3),
        Instruction(LI, reg1=2, immediate=4),
        Instruction(LI, reg1=2, immediate=5),
    ])
    # register[0] == register[1], so execution resumes at index 5, not 4
    assert snapshot.registers == (0, 0, 5)
    print("✓ JE resumes at target + 1")


def test_jne_lands_one_past_target():
    machine = create_machine(3, 2)
    snapshot = run(machine, [
        Instruction(LI, reg1=0, immediate=1),
        Instruction(Opcode.JNE, reg1=0, reg2=1, addr=3),
        Instruction(LI, reg1=2, immediate=2),
        Instruction(LI, reg1=2, immediate=3),
        Instruction(LI, reg1=2, immediate=4),
    ])
    assert snapshot.registers == (1, 0, 4)

    # Untaken JNE advances normally
    machine = create_machine(3, 2)
    snapshot = run(machine, [
        Instruction(Opcode.JNE, reg1=0, reg2=1, addr=3),
        Instruction(LI, reg1=2, immediate=2),
    ])
    assert snapshot.registers == (0, 0, 2)


def test_je_to_last_instruction_ends_run():
    machine = create_machine(2, 2)
    snapshot = run(machine, [
        Instruction(Opcode.JE, reg1=0, reg2=1, addr=1),
        Instruction(LI, reg1=1, immediate=9),
    ])
    assert snapshot.registers == (0, 0)


def test_jump_to_program_end_finishes():
    machine = create_machine(1, 1)
    snapshot = run(machine, [
        Instruction(Opcode.JMP, addr=2),
        Instruction(LI, reg1=0, immediate=9),
    ])
    assert snapshot.registers == (0,)


def test_invalid_jump_targets():
    for opcode in (Opcode.JMP, Opcode.JZ, Opcode.JE):
        for target in (-1, 3):
            program = [
                Instruction(opcode, reg1=0, reg2=0, addr=target),
                Instruction(Opcode.HALT),
            ]
            try:
                run(create_machine(1, 1), program)
                assert False, f"{opcode.name} to {target} should have raised"
            except InvalidJumpTarget as e:
                assert e.target == target
                assert e.program_size == 2

    # Untaken jumps are not validated
    snapshot = run(create_machine(1, 1), [
        Instruction(LI, reg1=0, immediate=1),
        Instruction(Opcode.JZ, reg1=0, addr=-50),
    ])
    assert snapshot.registers == (1,)


def test_countdown_loop():
    # r0 = 5; r1 = 1; r2 = 0; loop: push r0; r0 -= r1; jnz r0 loop; halt
    machine = create_machine(3, 8)
    snapshot = run(machine, [
        Instruction(LI, reg1=0, immediate=5),
        Instruction(LI, reg1=1, immediate=1),
        Instruction(Opcode.PUSH, reg1=0),
        Instruction(Opcode.SUB, reg1=0, reg2=1, reg3=0),
        Instruction(Opcode.JNZ, reg1=0, addr=2),
        Instruction(Opcode.HALT),
    ])
    assert snapshot.registers == (0, 1, 0)
    assert snapshot.stack == (1, 2, 3, 4, 5)
    print("✓ Countdown loop")


def test_errors_propagate():
    cases = [
        ([Instruction(Opcode.DIV, reg1=0, reg2=0, reg3=0)], DivisionByZero),
        ([Instruction(Opcode.PUSH)] * 3, StackOverflow),
        ([Instruction(42)], UnknownOpcode),
    ]
    for program, error in cases:
        try:
            run(create_machine(1, 2), program)
            assert False, f"Should have raised {error.__name__}"
        except error:
            pass


def test_trace_logging(caplog):
    with caplog.at_level(logging.DEBUG, logger="mdpu.engine"):
        run(create_machine(1, 1), [Instruction(LI, reg1=0, immediate=3), Instruction(Opcode.HALT)])
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("[0] LOAD_IMMEDIATE") for message in messages)
    assert any("HALT at instruction 1" in message for message in messages)
