"""
chronal machine — clocked interpreter for the wrist-device instruction set.

One tick executes one instruction. When the program binds the instruction
pointer to a register, the pointer is copied into that register before the
instruction runs and copied back out afterwards, so programs jump by writing
to it. The pointer is incremented after the read-back: writing K resumes
execution at K + 1.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .chips import RegisterFile
from .ops import Operator, operator_by_name

NUM_REGISTERS = 6  # days 19 and 21; day 16 uses 4

# State machine states
S_RUNNING = 0
S_DONE    = 1   # ip left the program
S_HALTED  = 2   # cycle ceiling reached

STATE_NAMES = {
    S_RUNNING: "S_RUNNING",
    S_DONE: "S_DONE",
    S_HALTED: "S_HALTED",
}


# ---------------------------------------------------------------------------
# Program representation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Instruction:
    op: str
    a: int
    b: int
    c: int

    def __str__(self) -> str:
        return f"{self.op} {self.a} {self.b} {self.c}"


@dataclass(frozen=True)
class Program:
    instructions: tuple[Instruction, ...]
    ip_register: int | None = None

    @classmethod
    def of(cls, instructions: Iterable[Instruction | Sequence],
           ip_register: int | None = None) -> Program:
        """Build from Instructions or plain (name, a, b, c) sequences."""
        built = []
        for ins in instructions:
            if not isinstance(ins, Instruction):
                name, a, b, c = ins
                ins = Instruction(name, int(a), int(b), int(c))
            built.append(ins)
        return cls(tuple(built), ip_register)

    def __len__(self) -> int:
        return len(self.instructions)

    def __getitem__(self, idx: int) -> Instruction:
        return self.instructions[idx]

    def __iter__(self):
        return iter(self.instructions)

    def validate(self) -> list[Operator]:
        """Resolve every operator name up front. Raises ValueError."""
        decoded = []
        for addr, ins in enumerate(self.instructions):
            try:
                decoded.append(operator_by_name(ins.op))
            except ValueError as e:
                raise ValueError(f"Instruction {addr}: {e}") from None
        return decoded

    def listing(self) -> str:
        lines = []
        if self.ip_register is not None:
            lines.append(f"#ip {self.ip_register}")
        lines.extend(str(ins) for ins in self.instructions)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------------

class ChronalMachine:
    """Fetch/execute state machine over a RegisterFile.

    Args:
        program: Program to run. Operator names are resolved once here.
        registers: Initial register file, or an iterable of initial values.
            The machine takes ownership; pass a clone to keep the original.
        num_registers: Size of a fresh zeroed register file when
            ``registers`` is None.
        max_cycles: Optional ceiling. None runs until the ip leaves the
            program, however long that takes.
    """

    def __init__(self, program: Program,
                 registers: RegisterFile | Iterable[int] | None = None,
                 num_registers: int = NUM_REGISTERS,
                 max_cycles: int | None = None):
        self.program = program
        self._decoded: list[Operator] = program.validate()

        if registers is None:
            registers = RegisterFile(num_registers)
        elif not isinstance(registers, RegisterFile):
            registers = RegisterFile(values=registers)
        self.registers = registers

        if program.ip_register is not None:
            # Fail at load time rather than on the first tick
            self.registers.get(program.ip_register)

        self.max_cycles = max_cycles
        self.ip = 0
        self.state = S_RUNNING if self._in_range() else S_DONE

        # --- Counters ---
        self.cycles = 0
        self.jumps = 0
        self.op_counts: Counter[str] = Counter()

    def _in_range(self) -> bool:
        return 0 <= self.ip < len(self._decoded)

    @property
    def running(self) -> bool:
        return self.state == S_RUNNING

    @property
    def current_instruction(self) -> Instruction | None:
        if self._in_range():
            return self.program.instructions[self.ip]
        return None

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------

    def tick(self) -> bool:
        """Execute one instruction. Returns True if still running."""
        if self.state != S_RUNNING:
            return False
        if self.max_cycles is not None and self.cycles >= self.max_cycles:
            self.state = S_HALTED
            return False

        bound = self.program.ip_register
        regs = self.registers
        ip = self.ip

        if bound is not None:
            regs.set(bound, ip)

        ins = self.program.instructions[ip]
        op = self._decoded[ip]
        op.execute(regs, ins.a, ins.b, ins.c)
        self.cycles += 1
        self.op_counts[op.name] += 1

        if bound is not None:
            new_ip = regs.get(bound)
            if new_ip != ip:
                self.jumps += 1
            ip = new_ip

        self.ip = ip + 1
        if not self._in_range():
            self.state = S_DONE
        return self.state == S_RUNNING

    def run(self) -> RegisterFile:
        """Run until S_DONE or S_HALTED. Returns the register file."""
        while self.tick():
            pass
        return self.registers

    def reset(self, registers: RegisterFile | Iterable[int] | None = None):
        """Rewind to ip 0 with fresh (or given) registers and zeroed counters."""
        if registers is None:
            registers = RegisterFile(len(self.registers))
        elif not isinstance(registers, RegisterFile):
            registers = RegisterFile(values=registers)
        self.registers = registers
        self.ip = 0
        self.state = S_RUNNING if self._in_range() else S_DONE
        self.reset_counters()

    def reset_counters(self):
        self.cycles = 0
        self.jumps = 0
        self.op_counts = Counter()

    def stats(self) -> dict:
        return {
            "cycles": self.cycles,
            "jumps": self.jumps,
            "ip": self.ip,
            "state": STATE_NAMES[self.state],
            "op_counts": dict(self.op_counts),
        }

    def stats_summary(self) -> str:
        s = self.stats()
        top = ", ".join(f"{name}={n}" for name, n in self.op_counts.most_common(4))
        return (
            f"State: {s['state']}\n"
            f"Cycles: {s['cycles']}\n"
            f"Jumps: {s['jumps']}\n"
            f"IP: {s['ip']}\n"
            f"Hot ops: {top or '(none)'}"
        )


def execute(program: Program,
            registers: RegisterFile | Iterable[int] | None = None,
            num_registers: int = NUM_REGISTERS,
            max_cycles: int | None = None) -> RegisterFile:
    """Run ``program`` to completion and return the final register file."""
    machine = ChronalMachine(program, registers, num_registers, max_cycles)
    return machine.run()
