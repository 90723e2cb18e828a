"""
Parsing of program listings and day-16 sample files.
"""

from __future__ import annotations

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chronal.loader import (
    CodedInstruction, Sample,
    load_program, load_samples, parse_instruction, parse_program, parse_samples,
)
from chronal.machine import Instruction

SAMPLE_TEXT = """\
Before: [3, 2, 1, 1]
9 2 1 2
After:  [3, 2, 2, 1]

Before: [0, 1, 2, 3]
4 0 1 3
After:  [0, 1, 2, 0]



7 3 2 0
7 2 1 1
"""


def test_parse_instruction():
    assert parse_instruction("addi 0 1 0") == Instruction("addi", 0, 1, 0)
    assert parse_instruction("  seti -3 0 2  ; comment") == Instruction("seti", -3, 0, 2)


@pytest.mark.parametrize("line", ["addi 0 1", "ADDI 0 1 0", "addi a b c", "add 1 2 3"])
def test_parse_instruction_rejects_malformed(line):
    with pytest.raises(ValueError):
        parse_instruction(line, 7)


def test_parse_instruction_unknown_mnemonic_reports_line():
    with pytest.raises(ValueError, match=r"Line 3: Unknown operator: 'xorr'"):
        parse_instruction("xorr 1 2 3", 3)


def test_parse_program_with_ip_and_comments():
    program = parse_program("""
        ; a comment line
        #ip 3
        seti 5 0 1   ; r1 = 5

        addr 1 1 0
    """)
    assert program.ip_register == 3
    assert [str(ins) for ins in program] == ["seti 5 0 1", "addr 1 1 0"]
    assert program.listing().splitlines()[0] == "#ip 3"


def test_parse_program_without_ip():
    program = parse_program("addi 0 1 0\n")
    assert program.ip_register is None
    assert len(program) == 1


def test_parse_program_rejects_duplicate_ip():
    with pytest.raises(ValueError, match="duplicate"):
        parse_program("#ip 1\n#ip 2\nseti 0 0 0\n")


def test_parse_program_error_carries_line_number():
    with pytest.raises(ValueError, match="Line 3"):
        parse_program("#ip 0\nseti 1 0 1\nbogus 1 2 3\n")


def test_parse_samples():
    samples, program = parse_samples(SAMPLE_TEXT)
    assert samples == [
        Sample(9, 2, 1, 2, (3, 2, 1, 1), (3, 2, 2, 1)),
        Sample(4, 0, 1, 3, (0, 1, 2, 3), (0, 1, 2, 0)),
    ]
    assert samples[0].operands == (2, 1, 2)
    assert program == [CodedInstruction(7, 3, 2, 0), CodedInstruction(7, 2, 1, 1)]


def test_parse_samples_without_program():
    samples, program = parse_samples(SAMPLE_TEXT.split("\n\n\n\n")[0])
    assert len(samples) == 2
    assert program == []


def test_parse_samples_rejects_bad_after_line():
    text = "Before: [1, 2, 3, 4]\n1 2 3 0\nAfta: [1, 2, 3, 4]\n"
    with pytest.raises(ValueError, match="Line 3"):
        parse_samples(text)


def test_parse_samples_rejects_mismatched_sizes():
    text = "Before: [1, 2, 3, 4]\n1 2 3 0\nAfter:  [1, 2, 3]\n"
    with pytest.raises(ValueError, match="differ"):
        parse_samples(text)


def test_formats_do_not_mix():
    with pytest.raises(ValueError, match="Line 2: expected 'name a b c'"):
        parse_program("#ip 0\n5 0 1 2\n")
    with pytest.raises(ValueError, match="Line 10: sample found after"):
        parse_samples(SAMPLE_TEXT.split("\n\n\n\n")[0] + "\n\n7 3 2 0\nBefore: [0, 0, 0, 0]\n")
    with pytest.raises(ValueError, match="Line 2"):
        parse_samples("Before: [1, 2, 3, 4]\naddi 2 3 0\nAfter:  [1, 2, 3, 4]\n")


def test_load_from_files(tmp_path):
    prog_path = tmp_path / "input19.txt"
    prog_path.write_text("#ip 0\nseti 5 0 1\n", encoding="utf-8")
    assert load_program(prog_path).ip_register == 0

    samples_path = tmp_path / "input16.txt"
    samples_path.write_text(SAMPLE_TEXT, encoding="utf-8")
    samples, program = load_samples(samples_path)
    assert len(samples) == 2 and len(program) == 2
