"""
loader — text formats for chronal programs and opcode samples.

Two formats are understood:

  Named programs (days 19 and 21)::

      #ip 0
      seti 5 0 1      ; trailing comments after ';' are ignored
      addi 0 1 0

  Sample files (day 16): blocks of ``Before: [..]`` / ``op a b c`` /
  ``After:  [..]`` separated by blank lines, followed by a coded program
  of ``op a b c`` lines using numeric opcodes.

Lines are parsed one at a time with a Lark LALR grammar so that every
error can name its line.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lark import Lark, Transformer, UnexpectedInput, v_args

from .machine import Instruction, Program
from .ops import is_operator


# ============================================================
# Grammar
# ============================================================

GRAMMAR = r"""
    line: directive | instruction | coded | before | after

    directive: "#ip" INT
    instruction: NAME INT INT INT
    coded: INT INT INT INT
    before: "Before:" registers
    after: "After:" registers
    registers: "[" (INT ("," INT)*)? "]"

    NAME: /[a-z]+/
    INT: /-?\d+/

    COMMENT: /;[^\n]*/
    %ignore COMMENT
    %ignore /\s+/
"""

parser = Lark(GRAMMAR, parser="lalr", start=["line", "instruction"])

_EXPECTED = {
    "line": "expected '#ip N', 'name a b c', 'opcode a b c' or a register list",
    "instruction": "expected 'name a b c'",
    "coded": "expected 'opcode a b c'",
}


# ============================================================
# Records
# ============================================================

@dataclass(frozen=True)
class CodedInstruction:
    opcode: int
    a: int
    b: int
    c: int


@dataclass(frozen=True)
class Sample:
    """One labelled observation: ``before`` --(opcode a b c)--> ``after``."""

    opcode: int
    a: int
    b: int
    c: int
    before: tuple[int, ...]
    after: tuple[int, ...]

    @property
    def operands(self) -> tuple[int, int, int]:
        return (self.a, self.b, self.c)


@dataclass(frozen=True)
class IpDirective:
    register: int


@dataclass(frozen=True)
class RegisterLine:
    label: str          # "Before" or "After"
    values: tuple[int, ...]


@v_args(inline=True)
class LineBuilder(Transformer):
    def line(self, item):
        return item

    def directive(self, reg):
        return IpDirective(int(reg))

    def instruction(self, name, a, b, c):
        return Instruction(str(name), int(a), int(b), int(c))

    def coded(self, opcode, a, b, c):
        return CodedInstruction(int(opcode), int(a), int(b), int(c))

    def registers(self, *values):
        return tuple(int(v) for v in values)

    def before(self, values):
        return RegisterLine("Before", values)

    def after(self, values):
        return RegisterLine("After", values)


line_builder = LineBuilder()


def _strip(line: str) -> str:
    return line.split(";", 1)[0].strip()


def _parse(line: str, lineno: int, start: str = "line"):
    try:
        tree = parser.parse(line, start=start)
    except UnexpectedInput:
        raise ValueError(
            f"Line {lineno}: {_EXPECTED[start]}, got {line.strip()!r}"
        ) from None
    return line_builder.transform(tree)


def _check_operator(ins: Instruction, lineno: int) -> Instruction:
    if not is_operator(ins.op):
        raise ValueError(f"Line {lineno}: Unknown operator: {ins.op!r}")
    return ins


# ============================================================
# Named programs
# ============================================================

def parse_instruction(line: str, lineno: int = 0) -> Instruction:
    return _check_operator(_parse(line, lineno, "instruction"), lineno)


def parse_program(text: str) -> Program:
    """Parse a named program, with an optional ``#ip N`` directive."""
    ip_register = None
    instructions = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        if not _strip(raw):
            continue
        rec = _parse(raw, lineno)
        if isinstance(rec, IpDirective):
            if ip_register is not None:
                raise ValueError(f"Line {lineno}: duplicate #ip directive")
            if rec.register < 0:
                raise ValueError(f"Line {lineno}: #ip register must be >= 0")
            ip_register = rec.register
        elif isinstance(rec, Instruction):
            instructions.append(_check_operator(rec, lineno))
        else:
            raise ValueError(f"Line {lineno}: {_EXPECTED['instruction']}, "
                             f"got {raw.strip()!r}")
    return Program(tuple(instructions), ip_register)


def load_program(path: str | Path) -> Program:
    return parse_program(Path(path).read_text(encoding="utf-8"))


# ============================================================
# Sample files
# ============================================================

def _is_register_line(rec, label: str) -> bool:
    return isinstance(rec, RegisterLine) and rec.label == label


def parse_samples(text: str) -> tuple[list[Sample], list[CodedInstruction]]:
    """Split a day-16 input into its samples and its coded program."""
    records = [
        (lineno, _parse(raw, lineno))
        for lineno, raw in enumerate(text.splitlines(), start=1)
        if _strip(raw)
    ]
    samples: list[Sample] = []
    program: list[CodedInstruction] = []

    i = 0
    n = len(records)
    while i < n and _is_register_line(records[i][1], "Before"):
        lineno, before = records[i]
        if i + 2 >= n:
            raise ValueError(f"Line {lineno}: truncated sample")
        op_lineno, coded = records[i + 1]
        if not isinstance(coded, CodedInstruction):
            raise ValueError(f"Line {op_lineno}: {_EXPECTED['coded']} after 'Before:'")
        after_lineno, after = records[i + 2]
        if not _is_register_line(after, "After"):
            raise ValueError(f"Line {after_lineno}: expected 'After: [...]'")
        if len(before.values) != len(after.values):
            raise ValueError(f"Line {lineno}: before/after register counts differ "
                             f"({len(before.values)} vs {len(after.values)})")
        samples.append(Sample(coded.opcode, coded.a, coded.b, coded.c,
                              before.values, after.values))
        i += 3

    for lineno, rec in records[i:]:
        if isinstance(rec, RegisterLine):
            raise ValueError(f"Line {lineno}: sample found after the coded program")
        if not isinstance(rec, CodedInstruction):
            raise ValueError(f"Line {lineno}: {_EXPECTED['coded']}")
        program.append(rec)

    return samples, program


def load_samples(path: str | Path) -> tuple[list[Sample], list[CodedInstruction]]:
    return parse_samples(Path(path).read_text(encoding="utf-8"))
