"""
Verification suite for the chronal machine.

Runs under pytest, or standalone as a plain suite:
    python chronal/test_machine.py
"""

from __future__ import annotations

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chronal.chips import RegisterFile
from chronal.loader import parse_program
from chronal.machine import (
    ChronalMachine, Instruction, Program, execute,
    S_DONE, S_HALTED, S_RUNNING,
)

# The worked example from the day-19 puzzle text
DAY19_EXAMPLE = """\
#ip 0
seti 5 0 1
seti 6 0 2
addi 0 1 0
addr 1 2 3
setr 1 0 0
seti 8 0 4
seti 9 0 5
"""


def test_single_instruction_without_bound_register():
    program = Program.of([("addi", 0, 1, 0)])
    machine = ChronalMachine(program, [41, 0, 0, 0])
    regs = machine.run()
    assert regs.get(0) == 42
    assert machine.ip == 1
    assert machine.cycles == 1
    assert machine.state == S_DONE


def test_bound_register_jump_resumes_one_past_written_value():
    # ip 0 writes 2 into the bound register, so execution resumes at 3;
    # the instructions at 1 and 2 must never run.
    program = Program.of([
        ("seti", 2, 0, 0),
        ("seti", 111, 0, 1),
        ("seti", 222, 0, 2),
        ("seti", 333, 0, 3),
    ], ip_register=0)
    machine = ChronalMachine(program, num_registers=4)
    assert machine.tick()
    assert machine.ip == 3
    assert machine.jumps == 1
    regs = machine.run()
    assert regs.get(1) == 0
    assert regs.get(2) == 0
    assert regs.get(3) == 333
    assert machine.cycles == 2


def test_bound_register_sees_ip_before_each_instruction():
    # setr copies the bound register (current ip) into r1/r2
    program = Program.of([
        ("setr", 0, 0, 1),
        ("setr", 0, 0, 2),
    ], ip_register=0)
    regs = execute(program, num_registers=3)
    assert regs.get(1) == 0
    assert regs.get(2) == 1


def test_day19_example():
    program = parse_program(DAY19_EXAMPLE)
    machine = ChronalMachine(program, num_registers=6)
    regs = machine.run()
    assert regs == [6, 5, 6, 0, 0, 9]
    assert machine.ip == 7
    assert machine.cycles == 5


def test_jump_out_of_range_terminates():
    program = Program.of([("seti", 99, 0, 0), ("seti", 1, 0, 1)], ip_register=0)
    machine = ChronalMachine(program, num_registers=2)
    machine.run()
    assert machine.state == S_DONE
    assert machine.cycles == 1
    assert machine.ip == 100

    backwards = Program.of([("seti", -5, 0, 0)], ip_register=0)
    machine = ChronalMachine(backwards, num_registers=2)
    machine.run()
    assert machine.state == S_DONE
    assert machine.ip == -4


def test_max_cycles_halts_infinite_loop():
    # seti 0 -> bound register: jumps back to 1 forever
    program = Program.of([("addi", 1, 1, 1), ("seti", 0, 0, 0)], ip_register=0)
    machine = ChronalMachine(program, num_registers=2, max_cycles=1001)
    machine.run()
    assert machine.state == S_HALTED
    assert machine.cycles == 1001
    # first pass runs ip 0 once, then the loop body is ip 1 -> ip 1
    assert machine.registers.get(1) == 1
    assert not machine.tick()


def test_unknown_operator_rejected_at_load():
    program = Program((Instruction("addr", 0, 0, 0), Instruction("nope", 1, 2, 3)))
    with pytest.raises(ValueError, match="nope"):
        ChronalMachine(program)
    with pytest.raises(ValueError, match="Instruction 1"):
        program.validate()

    good = Program.of([("addr", 0, 0, 0), ("seti", 1, 0, 2)])
    assert [op.name for op in good.validate()] == ["addr", "seti"]


def test_bad_register_index_fails_loudly():
    program = Program.of([("addr", 0, 9, 0)])
    machine = ChronalMachine(program, num_registers=4)
    with pytest.raises(IndexError):
        machine.run()

    with pytest.raises(IndexError):
        ChronalMachine(Program.of([("seti", 0, 0, 0)], ip_register=6), num_registers=6)


def test_empty_program_is_done_immediately():
    machine = ChronalMachine(Program(()), num_registers=4)
    assert machine.state == S_DONE
    assert machine.run() == [0, 0, 0, 0]
    assert machine.cycles == 0


def test_reset_and_counters():
    program = parse_program(DAY19_EXAMPLE)
    machine = ChronalMachine(program, num_registers=6)
    machine.run()
    assert machine.op_counts["seti"] == 3
    assert machine.stats()["state"] == "S_DONE"
    assert "Cycles: 5" in machine.stats_summary()

    machine.reset([1, 0, 0, 0, 0, 0])
    assert machine.state == S_RUNNING
    assert machine.cycles == 0
    assert machine.registers.get(0) == 1
    machine.run()
    assert machine.registers == [6, 5, 6, 0, 0, 9]


def test_machine_accepts_register_file_and_owns_it():
    regs = RegisterFile.of(1, 2, 3, 4)
    machine = ChronalMachine(Program.of([("addr", 0, 1, 3)]), regs.clone())
    machine.run()
    assert regs == [1, 2, 3, 4]
    assert machine.registers == [1, 2, 3, 3]


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    print("=" * 60)
    print("chronal machine — Verification Suite")
    print("=" * 60)

    tests = [(name, fn) for name, fn in globals().items()
             if name.startswith("test_") and callable(fn)]
    failed = 0
    for name, fn in tests:
        try:
            fn()
        except Exception as e:
            failed += 1
            print(f"  FAIL: {name}: {e!r}")
        else:
            print(f"  ok    {name}")

    print("\n" + "=" * 60)
    if not failed:
        print("ALL TESTS PASSED")
    else:
        print(f"{failed} TEST(S) FAILED")
        sys.exit(1)


if __name__ == "__main__":
    main()
