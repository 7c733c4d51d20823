# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

import sys
from typing import Final, Optional, TextIO, Union
from abc import abstractmethod

from .ansi_color import ansi_colors_for


class MultilineError(Exception):
    @abstractmethod
    def print_indented(self, fp: TextIO) -> None:
        pass


class FileError(Exception):
    "An OS error reading or writing `filename`"

    def __init__(self, filename: str, message: str):
        self.filename: Final = filename
        self.message: Final = message

    def __str__(self) -> str:
        return f"{self.filename}: {self.message}"


def print_error(heading: str, detail: Optional[Union[str, Exception]] = None, fp: Optional[TextIO] = None) -> None:
    "Prints a bold red heading, followed by the detail (if any), to stderr"

    if fp is None:
        fp = sys.stderr

    ac = ansi_colors_for(fp)

    fp.write(f"{ac.BOLD}{ac.BRIGHT_RED}{heading}")

    if isinstance(detail, FileError):
        fp.write(f":{ac.NORMAL} {ac.BOLD}{ac.BRIGHT_WHITE}{detail.filename}{ac.NORMAL}: {ac.BRIGHT_RED}{detail.message}")
    elif isinstance(detail, MultilineError):
        fp.write(f":{ac.NORMAL} ")
        detail.print_indented(fp)
    elif detail:
        fp.write(f":{ac.NORMAL} {detail}")

    fp.write(ac.RESET + "\n")


def print_source_line(line: str, column: Optional[int], fp: Optional[TextIO] = None) -> None:
    "Prints a source line with a caret under `column` (1-based)"

    if fp is None:
        fp = sys.stderr

    ac = ansi_colors_for(fp)

    fp.write(f"    {line}\n")
    if column:
        # Keep tabs so the caret lines up with the source line
        padding = "".join(c if c == "\t" else " " for c in line[: column - 1])
        fp.write(f"    {padding}{ac.BOLD}{ac.BRIGHT_GREEN}^{ac.RESET}\n")
