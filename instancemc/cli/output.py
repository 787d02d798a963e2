"""Rendering of the CLI output: task lines reporting the progress of a command, tables
for listings, and the launch command line.

Human output keeps a single task line that is rewritten in place until finished, the
machine output prints one line per call in the form `name:arg,arg,key=value`.
"""

from .lang import get_raw as _raw

import shutil
import shlex
import re

from typing import List, Optional


# Width of the "[ STATE ] " header of human task lines.
STATE_WIDTH = 9


class OutputTable:
    """Rows of a table being built, a separator is stored as None. The table is
    rendered by the output that created it.
    """

    def __init__(self, out: "Output") -> None:
        self.out = out
        self.rows: List[Optional[List[str]]] = []

    def add(self, *cells) -> None:
        self.rows.append([str(cell) for cell in cells])

    def separator(self) -> None:
        self.rows.append(None)

    def print(self) -> None:
        self.out.print_table(self)


class Output:
    """Abstract output of the CLI, implemented for humans and machines.
    """

    def table(self) -> OutputTable:
        return OutputTable(self)

    def print_table(self, table: OutputTable) -> None:
        raise NotImplementedError

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        """Update the current task line with a state and a message from the lang
        catalog, a task is created if none is active.
        """
        raise NotImplementedError

    def finish(self) -> None:
        """Finish the current task, if any.
        """
        raise NotImplementedError

    def command(self, args: List[str]) -> None:
        raise NotImplementedError


class HumanOutput(Output):

    colors = {
        "OK": 92,
        "FAILED": 31,
        "WARN": 33,
        "INFO": 34,
        "HALT": 33,
    }

    def __init__(self, color: bool) -> None:
        self.color = color
        # Length of the message of the active task, none if no task is active.
        self.task_len: Optional[int] = None

    def header(self, state: Optional[str]) -> str:
        if state is None:
            return " " * STATE_WIDTH
        code = self.colors.get(state) if self.color else None
        if code is None:
            return f"[{state:^6s}] "
        return f"[\033[{code}m{state:^6s}\033[0m] "

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:

        width = shutil.get_terminal_size().columns
        msg = "" if key is None else _raw(key, kwargs)
        if len(msg) + STATE_WIDTH > width:
            msg = msg[:max(0, width - STATE_WIDTH - 3)] + "..."

        # Pad to erase the rest of the previous message.
        padding = max(0, (self.task_len or 0) - len(msg))
        print(f"\r{self.header(state)}{msg}{' ' * padding}", end="", flush=True)
        self.task_len = len(msg)

    def finish(self) -> None:
        if self.task_len is not None:
            print()
            self.task_len = None

    def print_table(self, table: OutputTable) -> None:

        widths: List[int] = []
        for row in table.rows:
            for i, cell in enumerate(row or ()):
                if i == len(widths):
                    widths.append(len(cell))
                elif len(cell) > widths[i]:
                    widths[i] = len(cell)

        def border(left: str, mid: str, right: str) -> str:
            return left + mid.join("─" * (width + 2) for width in widths) + right

        print(border("┌", "┬", "┐"))
        for row in table.rows:
            if row is None:
                print(border("├", "┼", "┤"))
            else:
                cells = row + [""] * (len(widths) - len(row))
                print("│" + "│".join(f" {cell:{width}s} " for cell, width in zip(cells, widths)) + "│")
        print(border("└", "┴", "┘"))

    def command(self, args: List[str]) -> None:
        print(shlex.join(args))


class MachineOutput(Output):

    escape_re = re.compile(r"[\n\r,\\]")
    escapes = {"\n": "\\n", "\r": "\\r", ",": "\\,", "\\": "\\\\"}

    def line(self, name: str, *args: str, **kwargs) -> None:
        """Print a single machine-readable line, arguments are escaped so that commas
        only separate them.
        """
        values = [*args, *(f"{k}={v}" for k, v in kwargs.items())]
        escaped = (self.escape_re.sub(lambda m: self.escapes[m.group()], str(value)) for value in values)
        print(f"{name}:{','.join(escaped)}")

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        self.line("task", str(state), str(key), **kwargs)

    def finish(self) -> None:
        pass

    def print_table(self, table: OutputTable) -> None:
        self.line("table", str(len(table.rows)))
        for row in table.rows:
            if row is None:
                self.line("sep")
            else:
                self.line("row", *row)

    def command(self, args: List[str]) -> None:
        self.line("command", *args)
