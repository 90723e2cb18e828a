"""
Chip primitives for the chronal machine.

Models the wrist device's register file: a fixed number of unbounded
signed integer registers, addressed by index.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class RegisterFile:
    """Fixed-size bank of integer registers.

    Indices are checked on every access. Negative indices are rejected
    rather than wrapped, since an instruction naming register -1 means the
    instruction stream is corrupt.
    """

    def __init__(self, size: int = 4, values: Iterable[int] | None = None):
        regs = [int(v) for v in values] if values is not None else [0] * max(size, 0)
        if not regs:
            count = 0 if values is not None else size
            raise ValueError(f"Register file needs at least 1 register, got {count}")
        self._regs = regs

    @classmethod
    def of(cls, *values: int) -> RegisterFile:
        return cls(values=values)

    def _check(self, idx: int):
        if not 0 <= idx < len(self._regs):
            raise IndexError(
                f"Register index {idx} out of range (size={len(self._regs)})"
            )

    def get(self, idx: int) -> int:
        self._check(idx)
        return self._regs[idx]

    def set(self, idx: int, val: int):
        self._check(idx)
        self._regs[idx] = val

    def clone(self) -> RegisterFile:
        return RegisterFile(values=self._regs)

    def load(self, values: Iterable[int]):
        """Overwrite every register at once. Length must match."""
        new = [int(v) for v in values]
        if len(new) != len(self._regs):
            raise ValueError(
                f"Expected {len(self._regs)} register values, got {len(new)}"
            )
        self._regs = new

    def snapshot(self) -> tuple[int, ...]:
        return tuple(self._regs)

    def __len__(self) -> int:
        return len(self._regs)

    def __iter__(self) -> Iterator[int]:
        return iter(self._regs)

    def __getitem__(self, idx: int) -> int:
        return self.get(idx)

    def __setitem__(self, idx: int, val: int):
        self.set(idx, val)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RegisterFile):
            return self._regs == other._regs
        if isinstance(other, (list, tuple)):
            return self._regs == list(other)
        return NotImplemented

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"RegisterFile({self._regs})"

    def __str__(self) -> str:
        return "[" + ", ".join(str(v) for v in self._regs) + "]"
