"""
Textual TUI debugger for the chronal machine.

Instruction-stepping debugger that loads a wrist-device program, runs it
on the machine, and displays the listing, registers and counters at
every step.

Usage:
    python -m chronal.debugger input19.txt
    python -m chronal.debugger input19.txt --r0 1 --registers 6
    python -m chronal.debugger --run input21.txt
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import ScrollableContainer
from textual.widgets import Static, RichLog, Footer
from textual import work
from textual.worker import Worker, get_current_worker

from chronal.machine import NUM_REGISTERS, STATE_NAMES
from chronal.runner import ProgramRunner


def _esc(text: str) -> str:
    """Escape Rich markup characters in text."""
    return text.replace("[", "\\[")


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------

DEBUGGER_CSS = """
Screen {
    layout: grid;
    grid-size: 2 3;
    grid-columns: 1fr 1fr;
    grid-rows: 2fr 1fr auto;
}

.panel {
    border: solid $accent;
    border-title-align: left;
    overflow-y: auto;
    height: 100%;
}

#source-panel    { row-span: 2; }
#registers-panel { column-span: 1; }
#output-panel    { column-span: 1; }

Footer {
    column-span: 2;
}
"""


# ---------------------------------------------------------------------------
# Panel widgets
# ---------------------------------------------------------------------------

class SourcePanel(ScrollableContainer):
    """Program listing with the current instruction highlighted."""
    BORDER_TITLE = "Program"

    def compose(self) -> ComposeResult:
        yield Static("", id="source-content")


class RegistersPanel(ScrollableContainer):
    """Register file, ip and counters."""
    BORDER_TITLE = "Machine State"

    def compose(self) -> ComposeResult:
        yield Static("", id="registers-content")


class OutputPanel(ScrollableContainer):
    """Run log."""
    BORDER_TITLE = "Output"

    def compose(self) -> ComposeResult:
        yield RichLog(id="output-log", markup=True, wrap=True)


# ---------------------------------------------------------------------------
# Main debugger app
# ---------------------------------------------------------------------------

class ChronalDebugger(App):
    """Textual TUI debugger for the chronal machine."""

    CSS = DEBUGGER_CSS
    TITLE = "Chronal Debugger"

    BINDINGS = [
        Binding("s", "step_1", "Step"),
        Binding("space", "step_1", "Step", show=False),
        Binding("n", "step_10", "x10"),
        Binding("f", "step_100", "x100"),
        Binding("r", "run_to_end", "Run"),
        Binding("b", "toggle_breakpoint", "Break"),
        Binding("x", "restart", "Restart"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, runner: ProgramRunner, auto_run: bool = False):
        super().__init__()
        self.runner = runner
        self.auto_run = auto_run
        self._output_line_count = 0
        self._last_registers: list[int] = list(runner.registers)
        self._run_worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield SourcePanel(id="source-panel", classes="panel")
        yield RegistersPanel(id="registers-panel", classes="panel")
        yield OutputPanel(id="output-panel", classes="panel")
        yield Footer()

    def on_mount(self) -> None:
        self.refresh_panels()
        if self.auto_run:
            self.action_run_to_end()

    # -------------------------------------------------------------------
    # Panel refresh
    # -------------------------------------------------------------------

    def refresh_panels(self) -> None:
        self._refresh_source()
        self._refresh_registers()
        self._refresh_output()

    def _refresh_source(self) -> None:
        lines = []
        program = self.runner.program
        ip = self.runner.ip
        if program.ip_register is not None:
            lines.append(f"   #ip {program.ip_register}")
        for addr, ins in enumerate(program.instructions):
            prefix = "●" if addr in self.runner.breakpoints else " "
            marker = "▸" if addr == ip else " "
            line = f"{prefix}{marker} {addr:3d}│ {ins}"
            if addr == ip:
                line = f"[bold reverse]{line}[/bold reverse]"
            lines.append(line)

        content = self.query_one("#source-content", Static)
        content.update("\n".join(lines) if lines else "(no program loaded)")

    def _refresh_registers(self) -> None:
        m = self.runner.machine
        bound = self.runner.program.ip_register
        rows = []
        for i, val in enumerate(m.registers):
            label = f"r{i}"
            if i == bound:
                label += " (ip)"
            row = f"[bold]{label:>7s}:[/bold] {val}"
            if i < len(self._last_registers) and self._last_registers[i] != val:
                row = f"[yellow]{row}[/yellow]"
            rows.append(row)
        self._last_registers = list(m.registers)

        current = m.current_instruction
        text = (
            f"[bold]State:[/bold] {STATE_NAMES.get(m.state, f'?({m.state})')}    "
            f"[bold]Cycle:[/bold] {m.cycles}\n"
            f"[bold]IP:[/bold] {m.ip}  [bold]Next:[/bold] "
            f"{_esc(str(current)) if current else '-'}\n"
            f"[bold]Jumps:[/bold] {m.jumps}\n\n"
            + "\n".join(rows)
        )
        content = self.query_one("#registers-content", Static)
        content.update(text)

    def _refresh_output(self) -> None:
        log = self.query_one("#output-log", RichLog)
        while self._output_line_count < len(self.runner.output_lines):
            log.write(_esc(self.runner.output_lines[self._output_line_count]))
            self._output_line_count += 1

    # -------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------

    def _report_error(self, err: Exception) -> None:
        """Show an error in the output panel."""
        self.runner.output_lines.append(f"[ERROR] {err}")
        self.refresh_panels()

    def _worker_running(self) -> bool:
        """True while a background run owns the machine."""
        return self._run_worker is not None and not self._run_worker.is_finished

    def _do_steps(self, count: int) -> None:
        if self._worker_running():
            return
        try:
            self.runner.step(count)
        except IndexError as e:
            self._report_error(e)
            return
        self.refresh_panels()

    def action_step_1(self) -> None:
        self._do_steps(1)

    def action_step_10(self) -> None:
        self._do_steps(10)

    def action_step_100(self) -> None:
        self._do_steps(100)

    def action_toggle_breakpoint(self) -> None:
        if self._worker_running():
            return
        self.runner.toggle_breakpoint(self.runner.ip)
        self._refresh_source()

    def action_restart(self) -> None:
        if self._worker_running():
            return
        self.runner.restart()
        self._output_line_count = 0
        self.query_one("#output-log", RichLog).clear()
        self.refresh_panels()

    def action_run_to_end(self) -> None:
        if self._worker_running():
            return
        self._run_worker = self._run_in_background()

    async def action_quit(self) -> None:
        if self._run_worker is not None:
            self._run_worker.cancel()
        self.exit()

    @work(thread=True, exclusive=True, group="run")
    def _run_in_background(self) -> None:
        """Run to completion (or the next breakpoint) in a background thread."""
        worker = get_current_worker()
        try:
            cycle = 0
            while self.runner.tick():
                if worker.is_cancelled:
                    return
                cycle += 1
                if self.runner.ip in self.runner.breakpoints:
                    self.call_from_thread(self.refresh_panels)
                    return
                if cycle % 5000 == 0:
                    self.call_from_thread(self.refresh_panels)
        except IndexError as e:
            self.call_from_thread(self._report_error, e)
            return
        self.call_from_thread(self.refresh_panels)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="chronal machine TUI debugger",
        prog="python -m chronal.debugger",
    )
    parser.add_argument("file", help="Path to a program file")
    parser.add_argument("--r0", type=int, default=0, help="Initial value of register 0")
    parser.add_argument("--registers", type=int, default=NUM_REGISTERS,
                        help="Number of registers")
    parser.add_argument("--max-cycles", type=int, default=None,
                        help="Stop after this many instructions")
    parser.add_argument("--run", action="store_true",
                        help="Run to completion immediately (auto-run mode)")
    args = parser.parse_args(argv)
    if args.registers < 1:
        parser.error(f"--registers must be at least 1, got {args.registers}")

    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)

    regs = [0] * args.registers
    regs[0] = args.r0
    try:
        runner = ProgramRunner.from_file(path, registers=regs,
                                         num_registers=args.registers,
                                         max_cycles=args.max_cycles)
    except (ValueError, IndexError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    app = ChronalDebugger(runner, auto_run=args.run)
    app.run()


if __name__ == "__main__":
    main()
