"""
runner — drive a ChronalMachine over a named program.

Wraps the machine with breakpoint-aware stepping for the debugger and
with a watch mode that samples one register at one address and stops as
soon as a sampled value repeats.

Usage:
    python -m chronal.runner input19.txt                 # run to completion
    python -m chronal.runner input19.txt --r0 1 --max-cycles 10000000
    python -m chronal.runner input21.txt --watch         # fastest/slowest halt
    python -m chronal.runner input21.txt --watch --address 28 --register 5
"""

from __future__ import annotations

import argparse
import sys
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .chips import RegisterFile
from .loader import load_program, parse_program
from .machine import NUM_REGISTERS, S_DONE, S_HALTED, ChronalMachine, Program


# ---------------------------------------------------------------------------
# Watch mode
# ---------------------------------------------------------------------------

@dataclass
class WatchReport:
    """Result of watching one register at one address.

    ``seen`` maps every distinct sampled value to the cycle count at which
    it was first sampled. ``fastest`` is the first sampled value and
    ``slowest`` the last distinct value before a repeat.
    """

    address: int
    register: int
    fastest: int | None = None
    fastest_cycles: int | None = None
    slowest: int | None = None
    slowest_cycles: int | None = None
    repeated: bool = False
    stop_state: str = "S_RUNNING"
    seen: dict[int, int] = field(default_factory=dict)

    @property
    def distinct(self) -> int:
        return len(self.seen)


def find_halt_check(program: Program) -> tuple[int, int] | None:
    """Locate the first ``eqrr`` that compares a register against register 0.

    Returns (address, other_register) or None. Register 0 is never written
    by such programs, so the other register holds the value that would make
    the program halt.
    """
    for addr, ins in enumerate(program.instructions):
        if ins.op != "eqrr":
            continue
        if ins.b == 0 and ins.a != 0:
            return addr, ins.a
        if ins.a == 0 and ins.b != 0:
            return addr, ins.b
    return None


def watch_register(program: Program, address: int, register: int,
                   registers: RegisterFile | Iterable[int] | None = None,
                   num_registers: int = NUM_REGISTERS,
                   max_cycles: int | None = None) -> WatchReport:
    """Run ``program`` and sample ``register`` each time ip reaches ``address``.

    Open-ended by construction: this stops only on the first repeated value,
    on natural termination, or on ``max_cycles``.
    """
    if not 0 <= address < len(program):
        raise ValueError(f"Watch address {address} outside program (0..{len(program) - 1})")
    machine = ChronalMachine(program, registers, num_registers, max_cycles)
    machine.registers.get(register)  # fail fast on a bad register index

    report = WatchReport(address=address, register=register)
    bound = program.ip_register
    regs = machine.registers
    while machine.running:
        if machine.ip == address:
            # The bound register is written before execution; mirror that
            if bound is not None:
                regs.set(bound, machine.ip)
            value = regs.get(register)
            if value in report.seen:
                report.repeated = True
                break
            report.seen[value] = machine.cycles
            if report.fastest is None:
                report.fastest = value
                report.fastest_cycles = machine.cycles
            report.slowest = value
            report.slowest_cycles = machine.cycles
        machine.tick()

    if machine.state == S_DONE:
        report.stop_state = "S_DONE"
    elif machine.state == S_HALTED:
        report.stop_state = "S_HALTED"
    return report


# ---------------------------------------------------------------------------
# ProgramRunner
# ---------------------------------------------------------------------------

class ProgramRunner:
    """Step control over one program for the debugger and the CLI."""

    def __init__(self, program: Program,
                 registers: RegisterFile | Iterable[int] | None = None,
                 num_registers: int = NUM_REGISTERS,
                 max_cycles: int | None = None):
        self.program = program
        self.num_registers = num_registers
        self.max_cycles = max_cycles
        self._initial = list(registers) if registers is not None else [0] * num_registers
        self.machine = ChronalMachine(program, list(self._initial), num_registers, max_cycles)
        self.breakpoints: set[int] = set()
        self.output_lines: list[str] = []

    @classmethod
    def from_file(cls, path: str | Path, **kwargs) -> ProgramRunner:
        return cls(load_program(path), **kwargs)

    @classmethod
    def from_text(cls, text: str, **kwargs) -> ProgramRunner:
        return cls(parse_program(text), **kwargs)

    @property
    def ip(self) -> int:
        return self.machine.ip

    @property
    def registers(self) -> RegisterFile:
        return self.machine.registers

    def toggle_breakpoint(self, addr: int) -> bool:
        """Flip a breakpoint. Returns True if it is now set."""
        if addr in self.breakpoints:
            self.breakpoints.discard(addr)
            return False
        self.breakpoints.add(addr)
        return True

    def tick(self) -> bool:
        """Advance one instruction. Returns False once the machine stops."""
        if not self.machine.running:
            return False
        running = self.machine.tick()
        if not running:
            self._report_stop()
        return running

    def step(self, count: int = 1) -> int:
        """Execute up to ``count`` instructions. Returns how many ran."""
        done = 0
        while done < count and self.machine.running:
            self.tick()
            done += 1
        return done

    def run_to_break(self) -> bool:
        """Run until a breakpoint address or the end.

        Always executes at least one instruction, so calling it again while
        parked on a breakpoint moves on. Returns True if stopped on a
        breakpoint.
        """
        if not self.machine.running:
            return False
        self.tick()
        while self.machine.running:
            if self.machine.ip in self.breakpoints:
                return True
            self.tick()
        return False

    def run(self) -> RegisterFile:
        while self.machine.running:
            self.tick()
        return self.machine.registers

    def restart(self):
        self.machine.reset(list(self._initial))
        self.output_lines.clear()

    def _report_stop(self):
        m = self.machine
        if m.state == S_HALTED:
            self.output_lines.append(f"Halted after {m.cycles} cycles (ceiling)")
        elif m.state == S_DONE:
            self.output_lines.append(
                f"Done after {m.cycles} cycles: ip={m.ip} registers={m.registers}"
            )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _initial_registers(num_registers: int, r0: int) -> list[int]:
    regs = [0] * num_registers
    regs[0] = r0
    return regs


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Run a wrist-device program to completion or watch for its halting values",
        prog="python -m chronal.runner",
    )
    parser.add_argument("program", help="Program file (#ip directive optional)")
    parser.add_argument("--r0", type=int, default=0, help="Initial value of register 0")
    parser.add_argument("--registers", type=int, default=NUM_REGISTERS,
                        help="Number of registers")
    parser.add_argument("--max-cycles", type=int, default=None,
                        help="Stop after this many instructions")
    parser.add_argument("--watch", action="store_true",
                        help="Report the fastest and slowest halting values")
    parser.add_argument("--address", type=int, default=None,
                        help="Watched instruction address (default: first eqrr against r0)")
    parser.add_argument("--register", type=int, default=None,
                        help="Watched register (default: the one compared against r0)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Print machine stats")
    args = parser.parse_args(argv)
    if args.registers < 1:
        parser.error(f"--registers must be at least 1, got {args.registers}")

    try:
        program = load_program(args.program)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    regs = _initial_registers(args.registers, args.r0)
    t0 = time.time()

    if args.watch:
        address, register = args.address, args.register
        if address is None or register is None:
            found = find_halt_check(program)
            if found is None:
                print("Error: no eqrr against r0 found; pass --address and --register",
                      file=sys.stderr)
                sys.exit(1)
            address = found[0] if address is None else address
            register = found[1] if register is None else register
        print(f"Watching r{register} at address {address}...", file=sys.stderr, flush=True)
        try:
            report = watch_register(program, address, register, regs,
                                    args.registers, args.max_cycles)
        except (ValueError, IndexError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print("PART 1")
        print("Fewest instructions:", report.fastest)
        print()
        print("PART 2")
        print("Most instructions:", report.slowest)
        if args.verbose:
            print()
            print(f"Distinct values: {report.distinct}")
            print(f"Fastest at cycle {report.fastest_cycles}, "
                  f"slowest at cycle {report.slowest_cycles}")
            print(f"Stopped on repeat: {report.repeated} ({report.stop_state})")
            print(f"Time: {time.time() - t0:.2f}s")
        return

    runner = ProgramRunner(program, regs, args.registers, args.max_cycles)
    try:
        registers = runner.run()
    except IndexError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print("Registers:", registers)
    print("Final value of R0:", registers.get(0))
    if runner.machine.state == S_HALTED:
        print(f"(stopped at the {args.max_cycles}-cycle ceiling)", file=sys.stderr)
    if args.verbose:
        print()
        print(runner.machine.stats_summary())
        print(f"Time: {time.time() - t0:.2f}s")


if __name__ == "__main__":
    main()
