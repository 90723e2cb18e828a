"""
Opcode recovery — deduce the opcode → operator mapping from samples.

Every labelled sample is replayed through the real operator table. An
opcode keeps only the operators consistent with every sample seen for it
(set intersection), and an operator pinned to one opcode is struck from
all the others. Candidate sets are 16-bit masks, one bit per operator.

Usage:
    python -m chronal.recovery input16.txt          # solve a day-16 input
    python -m chronal.recovery input16.txt -v       # also print the table
    python -m chronal.recovery --seeds 20           # scrambled self-check
"""

from __future__ import annotations

import argparse
import random
import sys
import time
from collections.abc import Iterable, Sequence

from .chips import RegisterFile
from .loader import CodedInstruction, Sample, load_samples
from .machine import ChronalMachine, Instruction, Program
from .ops import (
    ALL_OPERATORS, FULL_MASK, Operator,
    names_in, popcount, single_operator,
)

NUM_OPCODES = 16
NUM_REGISTERS = 4
AMBIGUOUS_THRESHOLD = 3


class ResolutionError(RuntimeError):
    """Raised when samples leave some opcode with zero or several candidates."""

    def __init__(self, unresolved: dict[int, list[str]]):
        self.unresolved = unresolved
        lines = []
        for opcode, names in sorted(unresolved.items()):
            shown = " ".join(names) if names else "(no candidates)"
            lines.append(f"  opcode {opcode}: {shown}")
        super().__init__(
            f"Couldn't find exactly 1 operator for {len(unresolved)} opcode(s):\n"
            + "\n".join(lines)
        )


def matching_mask(sample: Sample) -> int:
    """Mask of operators that turn ``sample.before`` into ``sample.after``."""
    before = RegisterFile(values=sample.before)
    after = list(sample.after)
    mask = 0
    for op in ALL_OPERATORS:
        try:
            result = op.apply(before, sample.a, sample.b, sample.c)
        except IndexError:
            # a or b names a register this sample does not have
            continue
        if result == after:
            mask |= op.mask
    return mask


def matching_operators(sample: Sample) -> list[Operator]:
    mask = matching_mask(sample)
    return [op for op in ALL_OPERATORS if mask & op.mask]


# ---------------------------------------------------------------------------
# Candidate table
# ---------------------------------------------------------------------------

class OpcodeTable:
    """Opcode → candidate-operator masks, narrowed one sample at a time."""

    def __init__(self, num_opcodes: int = NUM_OPCODES,
                 num_registers: int = NUM_REGISTERS):
        self.num_opcodes = num_opcodes
        self.num_registers = num_registers
        self.candidates: list[int] = [FULL_MASK] * num_opcodes
        self.history: list[list[int]] = [[FULL_MASK] for _ in range(num_opcodes)]

        # --- Counters ---
        self.samples_seen = 0
        self.ambiguous_samples = 0
        self.propagations = 0

    def _narrow(self, opcode: int, mask: int):
        if mask != self.candidates[opcode]:
            self.candidates[opcode] = mask
            self.history[opcode].append(mask)

    def observe(self, sample: Sample) -> int:
        """Fold one sample into the table. Returns its matching mask."""
        if not 0 <= sample.opcode < self.num_opcodes:
            raise ValueError(
                f"Opcode {sample.opcode} out of range (0..{self.num_opcodes - 1})"
            )
        if len(sample.before) != self.num_registers or len(sample.after) != self.num_registers:
            raise ValueError(
                f"Sample has {len(sample.before)}/{len(sample.after)} registers, "
                f"expected {self.num_registers}"
            )
        # Every operator writes register c
        if not 0 <= sample.c < self.num_registers:
            raise IndexError(
                f"Sample writes register {sample.c}, out of range "
                f"(size={self.num_registers})"
            )

        matches = matching_mask(sample)
        self.samples_seen += 1
        if popcount(matches) >= AMBIGUOUS_THRESHOLD:
            self.ambiguous_samples += 1

        old = self.candidates[sample.opcode]
        new = old & matches
        self._narrow(sample.opcode, new)
        if popcount(new) == 1 and popcount(old) != 1:
            self._eliminate(sample.opcode)
        return matches

    def _eliminate(self, opcode: int):
        """Strike opcode's pinned operator from every other opcode."""
        pinned = self.candidates[opcode]
        self.propagations += 1
        newly_pinned = []
        for oc in range(self.num_opcodes):
            if oc == opcode:
                continue
            old = self.candidates[oc]
            new = old & ~pinned
            self._narrow(oc, new)
            if popcount(new) == 1 and popcount(old) != 1:
                newly_pinned.append(oc)
        for oc in newly_pinned:
            self._eliminate(oc)

    def propagate(self):
        """Saturating elimination pass over every singleton."""
        changed = True
        while changed:
            changed = False
            for opcode in range(self.num_opcodes):
                pinned = self.candidates[opcode]
                if popcount(pinned) != 1:
                    continue
                for oc in range(self.num_opcodes):
                    if oc != opcode and self.candidates[oc] & pinned:
                        self._narrow(oc, self.candidates[oc] & ~pinned)
                        changed = True

    def is_resolved(self) -> bool:
        return all(popcount(m) == 1 for m in self.candidates)

    def unresolved(self) -> dict[int, list[str]]:
        return {
            opcode: names_in(mask)
            for opcode, mask in enumerate(self.candidates)
            if popcount(mask) != 1
        }

    def resolve(self) -> dict[int, Operator]:
        """Finish propagation and return the mapping, or raise ResolutionError."""
        self.propagate()
        bad = self.unresolved()
        if bad:
            raise ResolutionError(bad)
        mapping = {opcode: single_operator(mask) for opcode, mask in enumerate(self.candidates)}
        assert len(set(mapping.values())) == self.num_opcodes, "mapping is not a bijection"
        return mapping

    def describe(self) -> str:
        lines = []
        for opcode, mask in enumerate(self.candidates):
            lines.append(f"{opcode:2d}: {' '.join(names_in(mask)) or '-'}")
        return "\n".join(lines)

    def stats(self) -> dict:
        return {
            "samples": self.samples_seen,
            "ambiguous_samples": self.ambiguous_samples,
            "propagations": self.propagations,
            "resolved": sum(1 for m in self.candidates if popcount(m) == 1),
        }


def deduce(samples: Iterable[Sample], num_opcodes: int = NUM_OPCODES,
           num_registers: int = NUM_REGISTERS,
           verbose: bool = False) -> tuple[dict[int, Operator], OpcodeTable]:
    """Run every sample through a fresh table and resolve it."""
    table = OpcodeTable(num_opcodes, num_registers)
    for sample in samples:
        table.observe(sample)
    if verbose:
        print(f"After {table.samples_seen} samples:", file=sys.stderr, flush=True)
        print(table.describe(), file=sys.stderr, flush=True)
    return table.resolve(), table


def decode_program(coded: Iterable[CodedInstruction],
                   mapping: dict[int, Operator]) -> Program:
    """Translate numeric opcodes into a named Program (no bound register)."""
    instructions = []
    for addr, ci in enumerate(coded):
        op = mapping.get(ci.opcode)
        if op is None:
            raise ValueError(f"Instruction {addr}: no operator for opcode {ci.opcode}")
        instructions.append(Instruction(op.name, ci.a, ci.b, ci.c))
    return Program(tuple(instructions))


def solve(samples: Sequence[Sample], coded: Sequence[CodedInstruction],
          verbose: bool = False) -> dict:
    """Day 16: ambiguous-sample count, resolved table, final registers."""
    mapping, table = deduce(samples, verbose=verbose)
    program = decode_program(coded, mapping)
    machine = ChronalMachine(program, num_registers=NUM_REGISTERS)
    registers = machine.run()
    return {
        "ambiguous_samples": table.ambiguous_samples,
        "mapping": {opcode: op.name for opcode, op in sorted(mapping.items())},
        "registers": registers,
        "table": table,
        "machine": machine,
    }


# ---------------------------------------------------------------------------
# Scrambled black box (self-check)
# ---------------------------------------------------------------------------

def make_blackbox(seed: int = 11, num_samples: int = 1000,
                  num_registers: int = NUM_REGISTERS):
    """
    Create a hidden opcode permutation and samples drawn through it.

    Returns (samples, true_mapping) where true_mapping[opcode] is the
    Operator the hidden device wires to that opcode.
    """
    rng = random.Random(seed)
    ops = list(ALL_OPERATORS)
    rng.shuffle(ops)
    true_mapping = {opcode: op for opcode, op in enumerate(ops)}

    samples = []
    for i in range(num_samples):
        # Cover every opcode before going random
        opcode = i if i < NUM_OPCODES else rng.randrange(NUM_OPCODES)
        a = rng.randrange(num_registers)
        b = rng.randrange(num_registers)
        c = rng.randrange(num_registers)
        before = RegisterFile(values=[rng.randrange(4) for _ in range(num_registers)])
        after = true_mapping[opcode].apply(before, a, b, c)
        samples.append(Sample(opcode, a, b, c, before.snapshot(), after.snapshot()))
    return samples, true_mapping


def run_recovery(seed: int, num_samples: int = 1000, verbose: bool = False):
    """Recover one scrambled device. Returns (success, stats)."""
    samples, true_mapping = make_blackbox(seed, num_samples)
    try:
        mapping, table = deduce(samples, verbose=verbose)
    except ResolutionError as e:
        if verbose:
            print(f"  {e}")
        return False, {"seed": seed, "errors": len(e.unresolved), "samples": num_samples}

    errors = 0
    for opcode, op in mapping.items():
        if op != true_mapping[opcode]:
            if verbose:
                print(f"  ERROR: opcode {opcode} → {op.name} "
                      f"(expected {true_mapping[opcode].name})")
            errors += 1
    s = table.stats()
    s.update({"seed": seed, "errors": errors})
    return errors == 0, s


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _print_result(result: dict, verbose: bool):
    print("PART 1")
    print(f"Samples with {AMBIGUOUS_THRESHOLD} or more matching opcodes:",
          result["ambiguous_samples"])
    print()
    print("PART 2")
    print("Final value of R0:", result["registers"].get(0))
    if verbose:
        print()
        print("Opcode table:")
        for opcode, name in result["mapping"].items():
            print(f"  {opcode:2d}: {name}")
        print()
        print(result["machine"].stats_summary())


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Deduce wrist-device opcodes from samples and run the test program",
        prog="python -m chronal.recovery",
    )
    parser.add_argument("input", nargs="?", help="Day-16 puzzle input")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Print the resolved opcode table and machine stats")
    parser.add_argument("--seeds", type=int, default=10,
                        help="Number of scrambled devices to check (no input)")
    parser.add_argument("--start-seed", type=int, default=1, help="Starting seed")
    parser.add_argument("--samples", type=int, default=1000,
                        help="Samples per scrambled device")
    args = parser.parse_args(argv)

    if args.input:
        try:
            samples, coded = load_samples(args.input)
            result = solve(samples, coded, verbose=args.verbose)
        except (OSError, ValueError, IndexError, ResolutionError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        _print_result(result, args.verbose)
        return

    print(f"=== Scrambled opcode recovery ({args.seeds} seeds) ===\n")
    all_ok = True
    t0 = time.time()
    for seed in range(args.start_seed, args.start_seed + args.seeds):
        success, s = run_recovery(seed, args.samples, verbose=args.verbose)
        status = "OK" if success else "FAIL"
        print(f"  seed {seed:4d}: {status}  "
              f"({s.get('resolved', 0)}/{NUM_OPCODES} opcodes, "
              f"{s.get('ambiguous_samples', 0)} ambiguous samples, "
              f"{s.get('propagations', 0)} propagations)")
        if not success:
            all_ok = False

    elapsed = time.time() - t0
    print(f"\n=== Summary ===")
    print(f"  Seeds tested: {args.seeds}")
    print(f"  All passed: {all_ok}")
    print(f"  Total time: {elapsed:.2f}s")
    if not all_ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
