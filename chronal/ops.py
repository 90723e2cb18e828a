"""
Operator table for the chronal machine.

Sixteen operators built from seven families (add, mul, ban, bor, set, gt,
eq) and the kinds of their two source operands. Each operator also owns a
bit index so that sets of operators can be carried around as 16-bit masks.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from .chips import RegisterFile

# Operand kinds
REG = "r"
IMM = "i"
UNUSED = None


@dataclass(frozen=True)
class Operator:
    """A named, pure register-machine operator.

    Equality and hashing use the name only, so operators can live in sets
    and dict keys and compare equal across lookups.
    """

    name: str
    a_kind: str | None
    b_kind: str | None
    fn: Callable[[int, int], int] = field(compare=False, repr=False)
    bit: int = field(default=0, compare=False, repr=False)

    def _operand(self, regs: RegisterFile, kind: str | None, val: int) -> int:
        if kind == REG:
            return regs.get(val)
        if kind == IMM:
            return val
        return 0

    def compute(self, regs: RegisterFile, a: int, b: int) -> int:
        """Value this operator would write to register c."""
        return self.fn(self._operand(regs, self.a_kind, a),
                       self._operand(regs, self.b_kind, b))

    def execute(self, regs: RegisterFile, a: int, b: int, c: int) -> RegisterFile:
        """Write the result into ``regs`` in place and return it."""
        regs.set(c, self.compute(regs, a, b))
        return regs

    def apply(self, regs: RegisterFile, a: int, b: int, c: int) -> RegisterFile:
        """Pure form: return a new register file, leave ``regs`` untouched."""
        return self.execute(regs.clone(), a, b, c)

    @property
    def mask(self) -> int:
        return 1 << self.bit

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------

def _add(x: int, y: int) -> int:
    return x + y


def _mul(x: int, y: int) -> int:
    return x * y


def _ban(x: int, y: int) -> int:
    return x & y


def _bor(x: int, y: int) -> int:
    return x | y


def _set(x: int, _y: int) -> int:
    return x


def _gt(x: int, y: int) -> int:
    return 1 if x > y else 0


def _eq(x: int, y: int) -> int:
    return 1 if x == y else 0


# (name, a kind, b kind, family function), in canonical bit order
_TABLE = [
    ("addr", REG, REG,    _add),
    ("addi", REG, IMM,    _add),
    ("mulr", REG, REG,    _mul),
    ("muli", REG, IMM,    _mul),
    ("banr", REG, REG,    _ban),
    ("bani", REG, IMM,    _ban),
    ("borr", REG, REG,    _bor),
    ("bori", REG, IMM,    _bor),
    ("setr", REG, UNUSED, _set),
    ("seti", IMM, UNUSED, _set),
    ("gtir", IMM, REG,    _gt),
    ("gtri", REG, IMM,    _gt),
    ("gtrr", REG, REG,    _gt),
    ("eqir", IMM, REG,    _eq),
    ("eqri", REG, IMM,    _eq),
    ("eqrr", REG, REG,    _eq),
]

ALL_OPERATORS: tuple[Operator, ...] = tuple(
    Operator(name, a_kind, b_kind, fn, bit)
    for bit, (name, a_kind, b_kind, fn) in enumerate(_TABLE)
)

NUM_OPERATORS = len(ALL_OPERATORS)  # 16

OPERATOR_NAMES: list[str] = [op.name for op in ALL_OPERATORS]

# Name → bit index
NAME_TO_IDX: dict[str, int] = {op.name: op.bit for op in ALL_OPERATORS}

_BY_NAME: dict[str, Operator] = {op.name: op for op in ALL_OPERATORS}

FULL_MASK = (1 << NUM_OPERATORS) - 1


def operator_by_name(name: str) -> Operator:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise ValueError(f"Unknown operator: {name!r}") from None


def is_operator(name: str) -> bool:
    return name in _BY_NAME


# ---------------------------------------------------------------------------
# Mask helpers
# ---------------------------------------------------------------------------

def mask_of(operators: Iterable[Operator]) -> int:
    mask = 0
    for op in operators:
        mask |= op.mask
    return mask


def operators_in(mask: int) -> list[Operator]:
    """Operators whose bit is set in ``mask``, in canonical order."""
    return [op for op in ALL_OPERATORS if mask & op.mask]


def names_in(mask: int) -> list[str]:
    return [op.name for op in operators_in(mask)]


def popcount(mask: int) -> int:
    return bin(mask & FULL_MASK).count("1")


def single_operator(mask: int) -> Operator | None:
    """The operator a singleton mask stands for, else None."""
    if mask and mask & (mask - 1) == 0:
        return ALL_OPERATORS[mask.bit_length() - 1]
    return None


if __name__ == "__main__":
    regs = RegisterFile.of(3, 2, 1, 1)
    print(f"Operator table: {NUM_OPERATORS} operators")
    for op in ALL_OPERATORS:
        print(f"  {op.bit:2d} {op.name}  a={op.a_kind or '-'} b={op.b_kind or '-'}  "
              f"{regs} --(2 1 2)--> {op.apply(regs, 2, 1, 2)}")
