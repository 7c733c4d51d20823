# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

from enum import Enum, unique
from dataclasses import dataclass
from typing import Final, NamedTuple, Optional, TextIO

from .driver_constants import (
    CH_BUF_SIZE,
    N_PSG_CHANNELS,
    TICKS_PER_WHOLE_NOTE,
    VALID_NOTE_DENOMINATORS,
    STARTING_DEFAULT_LENGTH,
    STARTING_DEFAULT_PLUS_LENGTH,
    STARTING_OCTAVE,
    MIN_OCTAVE,
    MAX_OCTAVE,
    MAX_NOTE_TICKS,
    MAX_CLOCK_TICKS,
    MAX_DEFAULT_LENGTH,
    MAX_KEY_SHIFT,
    SEMITONES_PER_OCTAVE,
    MAX_VOLUME,
    MAX_NOISE_FREQUENCY,
    MIN_LOOP_COUNT,
    MAX_LOOP_COUNT,
    MAX_NESTED_LOOPS,
    MAX_PARAMETER_VALUE,
    REST_TONE,
)
from .bytecode import Bytecode, BytecodeError, I8_MIN, I8_MAX, SIGN_BYTE_MIN, SIGN_BYTE_MAX
from .errors import MultilineError


@unique
class ErrorKind(Enum):
    SYNTAX = "syntax"
    PARAMETER_RANGE = "parameter range"
    OCTAVE_RANGE = "octave range"
    NESTING_UNDERFLOW = "nesting underflow"
    NESTING_OVERFLOW = "nesting overflow"
    DUPLICATE_EXIT = "duplicate exit"
    RETURN_IN_NEST = "return in nest"
    NOTE_OVERFLOW = "note overflow"
    UNCLOSED_NEST = "unclosed nest"
    INTERNAL = "internal"


@dataclass
class MmlError:
    kind: ErrorKind
    message: str
    line_number: int
    column: Optional[int]

    def str(self) -> str:
        if self.column:
            return f"{self.line_number}:{self.column}: {self.message}"
        else:
            return f"{self.line_number}: {self.message}"


class CompileError(MultilineError):
    def __init__(self, errors: list[MmlError]):
        self.errors: Final = errors

    def print_indented(self, fp: TextIO) -> None:
        fp.write(f"{len(self.errors)} error(s) compiling MML:")
        for e in self.errors:
            fp.write(f"\n    {e.str()}")

    def __str__(self) -> str:
        return "Error compiling MML:\n    " + "\n    ".join(map(MmlError.str, self.errors))


class MmlCommandError(Exception):
    "Raised by a command handler, aborts the rest of the line."

    def __init__(self, kind: ErrorKind, message: str, column: Optional[int] = None):
        super().__init__(message)
        self.kind: Final = kind
        self.message: Final = message
        self.column: Final = column


class CompilerConfig(NamedTuple):
    buffer_size: int = CH_BUF_SIZE
    base_address: int = 0
    program_name: str = "p6psgmmlc"


DEFAULT_CONFIG: Final = CompilerConfig()


class Line(NamedTuple):
    line_number: int
    char_start: int
    text: str


class MmlLines(NamedTuple):
    channels: list[list[Line]]


# Channel selectors
FIRST_CHANNEL_ORD: Final = ord("D")
CHANNEL_NAMES: Final = tuple(chr(FIRST_CHANNEL_ORD + i) for i in range(N_PSG_CHANNELS))
DISABLE_CHANNELS_TOGGLE: Final = "X"


def _skip_line_number(line: str, pos: int) -> int:
    "Skip a BASIC style `<line number> \"` line prefix"

    if pos < len(line) and line[pos].isdigit():
        while pos < len(line) and line[pos].isdigit():
            pos += 1
        while pos < len(line) and line[pos] == " ":
            pos += 1
        if pos < len(line) and line[pos] == '"':
            pos += 1
    return pos


def source_lines(mml_text: str) -> list[str]:
    "Split on `\\n` only, other line break characters are part of the line"
    return [line.removesuffix("\r") for line in mml_text.split("\n")]


def split_lines(mml_text: str) -> MmlLines:
    """
    Route each source line to a channel.

    The first character of a line (after any whitespace or BASIC line number) selects the channel.
    A line starting with `X` toggles the routing of channel lines on and off.
    All other lines are ignored.
    """

    channels: list[list[Line]] = [list() for i in range(N_PSG_CHANNELS)]

    channels_disabled = False

    for line_no, line in enumerate(source_lines(mml_text), 1):
        pos = 0
        while pos < len(line) and line[pos] in " \t":
            pos += 1
        pos = _skip_line_number(line, pos)

        if pos >= len(line):
            continue

        c = line[pos].upper()

        if c == DISABLE_CHANNELS_TOGGLE:
            channels_disabled = not channels_disabled
        elif c in CHANNEL_NAMES and not channels_disabled:
            channel_index = ord(c) - FIRST_CHANNEL_ORD
            channels[channel_index].append(Line(line_no, pos + 1, line))

    return MmlLines(channels=channels)


NOTE_MAP: Final = {
    "C": 1,
    "D": 3,
    "E": 5,
    "F": 6,
    "G": 8,
    "A": 10,
    "B": 12,
}
REST: Final = "R"

BLANK_CHARACTERS: Final = " \t\r"
DIGITS: Final = "0123456789"


class Parameter(NamedTuple):
    "A parsed `[%][+|-][digits]` parameter"

    percent: bool
    plus: bool
    minus: bool
    # None if there were no digits
    value: Optional[int]


class NoteLength(NamedTuple):
    parameter: Parameter
    # Column of the parameter
    column: int
    # Column of each dot
    dots: tuple[int, ...]
    # `^` concatenated lengths (each part has no ties of its own)
    ties: tuple["NoteLength", ...]


class Tokenizer:
    """
    Character reader for a single line.

    Columns are 1-based and count from the start of the source line.
    """

    def __init__(self, text: str, char_start: int = 0):
        self.text: Final = text

        self._pos: int = char_start
        self._column: int = char_start + 1

    def at_end(self) -> bool:
        return self._pos >= len(self.text)

    def get_pos(self) -> int:
        "Returns the column of the next character"
        return self._column

    def peek(self) -> Optional[str]:
        if self._pos >= len(self.text):
            return None
        return self.text[self._pos]

    def next_char(self) -> Optional[str]:
        if self._pos >= len(self.text):
            return None

        c = self.text[self._pos]
        self._pos += 1
        # New lines are handled by the statement parser
        if c != "\n":
            self._column += 1
        return c

    def skip_whitespace(self) -> None:
        while (c := self.peek()) is not None and c in BLANK_CHARACTERS:
            self.next_char()

    def skip_to_end_of_line(self) -> None:
        while (c := self.peek()) is not None and c != "\n":
            self.next_char()

    def test_next_char(self, c: str) -> bool:
        "Skips whitespace and consumes the next character if it is `c`"
        self.skip_whitespace()
        if self.peek() == c:
            self.next_char()
            return True
        return False

    def _parse_digits(self) -> Optional[int]:
        c = self.peek()
        if c is None or c not in DIGITS:
            return None

        value = 0
        while (c := self.peek()) is not None and c in DIGITS:
            self.next_char()
            value = min(value * 10 + int(c), MAX_PARAMETER_VALUE)
        return value

    def parse_optional_uint(self) -> Optional[int]:
        self.skip_whitespace()
        return self._parse_digits()

    def parse_optional_int(self) -> Optional[int]:
        self.skip_whitespace()

        negative = False
        c = self.peek()
        if c == "+" or c == "-":
            negative = c == "-"
            self.next_char()

        v = self.parse_optional_uint()
        if v is None:
            return None
        return -v if negative else v

    def parse_parameter(self) -> Parameter:
        """
        Parse a `[%][+|-]digits` parameter.

        The flags are returned even if no digits follow them.
        Values larger than `MAX_PARAMETER_VALUE` saturate.
        """

        percent = plus = minus = False

        self.skip_whitespace()
        if self.peek() == "%":
            self.next_char()
            self.skip_whitespace()
            percent = True

        c = self.peek()
        if c == "-":
            self.next_char()
            self.skip_whitespace()
            minus = True
        elif c == "+":
            self.next_char()
            self.skip_whitespace()
            plus = True

        return Parameter(percent, plus, minus, self._parse_digits())

    def _parse_length_part(self) -> NoteLength:
        self.skip_whitespace()
        column: Final = self.get_pos()

        parameter: Final = self.parse_parameter()

        dots = list()
        while True:
            self.skip_whitespace()
            if self.peek() != ".":
                break
            dots.append(self.get_pos())
            self.next_char()

        return NoteLength(parameter, column, tuple(dots), ())

    def parse_note_length(self) -> NoteLength:
        "Parse a note length, including dots and `^` concatenated lengths"

        first: Final = self._parse_length_part()

        ties = list()
        while self.test_next_char("^"):
            ties.append(self._parse_length_part())

        return first._replace(ties=tuple(ties))


class SavedState(NamedTuple):
    "Channel state at the skip_last_loop (`:`) token"

    default_length: int
    default_plus_length: int
    octave: int
    octave_last: int


@dataclass
class LoopState:
    # Bytecode position of the loop body
    loop_body: int
    # Bytecode position after the optional skip_last_loop instruction
    skip_last_loop_pos: Optional[int]
    saved_state: Optional[SavedState]


class MmlCommands:
    """
    Channel compiler state.

    Persists across all of the lines of a channel.
    """

    def __init__(self, config: CompilerConfig):
        self.bc: Final = Bytecode(config.buffer_size)

        self.default_length: int = STARTING_DEFAULT_LENGTH
        self.default_plus_length: int = STARTING_DEFAULT_PLUS_LENGTH

        self.octave: int = STARTING_OCTAVE
        # The octave of the last octave instruction (the driver starts at `STARTING_OCTAVE`)
        self.octave_last: int = STARTING_OCTAVE

        self.key_shift: int = 0

        self.loop_stack: list[LoopState] = list()

        # Set by the `X` command
        self.stopped: bool = False

    @property
    def nest_depth(self) -> int:
        return len(self.loop_stack)

    def _reset_loops(self) -> None:
        # Loop tokens after a nesting error cannot be matched
        self.loop_stack.clear()

    #
    # Note lengths
    #

    def _apply_dots(self, ticks: int, dots: tuple[int, ...]) -> int:
        half = ticks
        for column in dots:
            if half % 2 != 0:
                raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Dotted note length is not a whole number of ticks", column)
            half //= 2
            ticks += half
        return ticks

    def _length_part_ticks(self, nl: NoteLength) -> int:
        p: Final = nl.parameter

        if p.percent:
            if p.value is None:
                raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Missing clock tick count after `%`", nl.column)
            if p.value < 1 or p.value > MAX_CLOCK_TICKS:
                raise MmlCommandError(ErrorKind.PARAMETER_RANGE, f"Clock tick count out of range (1-{MAX_CLOCK_TICKS})", nl.column)
            ticks = p.value

        elif p.value is None:
            ticks = self.default_length

        else:
            if p.value not in VALID_NOTE_DENOMINATORS:
                raise MmlCommandError(
                    ErrorKind.PARAMETER_RANGE,
                    f"Invalid note length ({','.join(map(str, VALID_NOTE_DENOMINATORS))})",
                    nl.column,
                )
            ticks = TICKS_PER_WHOLE_NOTE // p.value

        if nl.dots:
            ticks = self._apply_dots(ticks, nl.dots)

        return ticks

    def calculate_note_length(self, nl: NoteLength) -> int:
        "Returns note length in ticks"

        ticks = self._length_part_ticks(nl)
        for t in nl.ties:
            ticks += self._length_part_ticks(t)

        if ticks <= 0 or ticks > MAX_NOTE_TICKS:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, f"Note length is too long (max {MAX_NOTE_TICKS} ticks)", nl.column)

        return ticks

    def set_default_length(self, ticks: int, plus: bool) -> None:
        if ticks < 1 or ticks > MAX_DEFAULT_LENGTH:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, f"Default length out of range (1-{MAX_DEFAULT_LENGTH} ticks)")

        if plus:
            self.bc.set_default_plus_length(ticks)
            self.default_plus_length = ticks
        else:
            self.bc.set_default_length(ticks)
            self.default_length = ticks

    #
    # Notes
    #

    def calculate_tone(self, tone: int) -> tuple[int, int]:
        """
        Applies the key shift to a tone.

        Returns (tone, octave)
        """
        octave = self.octave

        if self.key_shift != 0:
            tone += self.key_shift
            if tone > SEMITONES_PER_OCTAVE:
                octave += 1
                tone -= SEMITONES_PER_OCTAVE
            elif tone < 1:
                octave -= 1
                tone += SEMITONES_PER_OCTAVE

            if octave < MIN_OCTAVE or octave > MAX_OCTAVE:
                raise MmlCommandError(ErrorKind.NOTE_OVERFLOW, "Transposed note is out of range")

        return tone, octave

    def play_note(self, tone: int, octave: int, ticks: int, tie: bool) -> None:
        octave_change: Final = octave if octave != self.octave_last else None

        self.bc.play_note(tone, tie, ticks, self.default_length, self.default_plus_length, octave_change)
        self.octave_last = octave

    def rest(self, ticks: int, tie: bool) -> None:
        self.bc.play_note(REST_TONE, tie, ticks, self.default_length, self.default_plus_length)

    def set_octave(self, o: int) -> None:
        if o < MIN_OCTAVE or o > MAX_OCTAVE:
            raise MmlCommandError(ErrorKind.OCTAVE_RANGE, f"Octave out of range ({MIN_OCTAVE}-{MAX_OCTAVE})")
        self.octave = o

    def set_key_shift(self, value: int) -> None:
        if value < -MAX_KEY_SHIFT or value > MAX_KEY_SHIFT:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, f"Key shift out of range (-{MAX_KEY_SHIFT}-{MAX_KEY_SHIFT})")
        self.key_shift = value

    #
    # Control
    #

    def _test_not_in_loop(self, name: str) -> None:
        if self.loop_stack:
            self._reset_loops()
            raise MmlCommandError(ErrorKind.RETURN_IN_NEST, f"`{name}` cannot be used inside a loop")

    def set_loop_point(self) -> None:
        self._test_not_in_loop("J")
        self.bc.loop_point()

    def stop_channel(self) -> None:
        self._test_not_in_loop("X")
        self.bc.stop_channel()
        self.stopped = True

    def start_loop(self) -> None:
        if len(self.loop_stack) >= MAX_NESTED_LOOPS:
            self._reset_loops()
            raise MmlCommandError(ErrorKind.NESTING_OVERFLOW, f"Too many nested loops (max {MAX_NESTED_LOOPS})")

        loop_body: Final = self.bc.start_loop()
        self.loop_stack.append(LoopState(loop_body, None, None))

    def skip_last_loop(self) -> None:
        if not self.loop_stack:
            self._reset_loops()
            raise MmlCommandError(ErrorKind.NESTING_UNDERFLOW, "`:` used outside of a loop")

        ls: Final = self.loop_stack[-1]

        if ls.skip_last_loop_pos is not None:
            self._reset_loops()
            raise MmlCommandError(ErrorKind.DUPLICATE_EXIT, "Only one skip last loop `:` token is allowed per loop")

        ls.skip_last_loop_pos = self.bc.skip_last_loop()

        # The last loop exits with the state at the `:` token
        ls.saved_state = SavedState(
            default_length=self.default_length,
            default_plus_length=self.default_plus_length,
            octave=self.octave,
            octave_last=self.octave_last,
        )

    def test_in_loop(self) -> None:
        if not self.loop_stack:
            raise MmlCommandError(ErrorKind.NESTING_UNDERFLOW, "Missing start of loop `[`")

    def end_loop(self, loop_count: int) -> None:
        self.test_in_loop()

        if loop_count < MIN_LOOP_COUNT or loop_count > MAX_LOOP_COUNT:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, f"Loop count out of range ({MIN_LOOP_COUNT}-{MAX_LOOP_COUNT})")

        ls: Final = self.loop_stack[-1]

        self.bc.end_loop(loop_count, ls.loop_body, ls.skip_last_loop_pos)

        self.loop_stack.pop()

        if ls.saved_state is not None:
            s = ls.saved_state
            self.default_length = s.default_length
            self.default_plus_length = s.default_plus_length
            self.octave = s.octave
            self.octave_last = s.octave_last

    def end(self) -> None:
        "Finalise bytecode"

        if self.loop_stack:
            raise MmlCommandError(ErrorKind.UNCLOSED_NEST, "Missing loop end `]`")

        self.bc.end()


def _test_range(v: int, min_value: int, max_value: int, name: str) -> int:
    if v < min_value or v > max_value:
        raise MmlCommandError(ErrorKind.PARAMETER_RANGE, f"{name} out of range ({min_value}-{max_value})")
    return v


class MmlParser:
    def __init__(self, tokenizer: Tokenizer, mml: MmlCommands):
        self.tokenizer: Final = tokenizer
        self.mml: Final = mml

        self._error_pos: int = tokenizer.get_pos()

    def _set_error_pos(self) -> None:
        self._error_pos = self.tokenizer.get_pos()

    #
    # parser helpers
    #

    def _parse_note_length(self) -> int:
        nl: Final = self.tokenizer.parse_note_length()
        ticks: Final = self.mml.calculate_note_length(nl)

        if nl.parameter.plus:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Cannot use `+` in a note length", nl.column)
        if nl.parameter.minus:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Cannot use `-` in a note length", nl.column)

        return ticks

    def _parse_uint(self, error_message: str) -> int:
        self.tokenizer.skip_whitespace()
        self._set_error_pos()

        v = self.tokenizer.parse_optional_uint()
        if v is None:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, error_message)
        return v

    def _parse_int(self, error_message: str) -> int:
        self.tokenizer.skip_whitespace()
        self._set_error_pos()

        v = self.tokenizer.parse_optional_int()
        if v is None:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, error_message)
        return v

    def _parse_comma(self, error_message: str) -> None:
        self.tokenizer.skip_whitespace()
        self._set_error_pos()

        if not self.tokenizer.test_next_char(","):
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, error_message)

    def _parse_optional_uint(self, default: int) -> int:
        self.tokenizer.skip_whitespace()
        self._set_error_pos()

        v = self.tokenizer.parse_optional_uint()
        if v is None:
            return default
        return v

    #
    # Notes
    #

    def parse_note(self, note: str) -> None:
        tone = NOTE_MAP[note]

        self.tokenizer.skip_whitespace()
        c = self.tokenizer.peek()
        if c == "#" or c == "+":
            self.tokenizer.next_char()
            tone += 1
        elif c == "-":
            self.tokenizer.next_char()
            tone -= 1

        # `B+` is `B` and `C-` is `C`
        tone = min(max(tone, 1), SEMITONES_PER_OCTAVE)

        tone, octave = self.mml.calculate_tone(tone)

        ticks: Final = self._parse_note_length()
        tie: Final = self.tokenizer.test_next_char("&")

        self.mml.play_note(tone, octave, ticks, tie)

    def parse_rest(self) -> None:
        ticks: Final = self._parse_note_length()
        tie: Final = self.tokenizer.test_next_char("&")

        self.mml.rest(ticks, tie)

    #
    # Note settings
    #

    def parse_set_octave(self) -> None:
        o: Final = self._parse_uint("Missing octave")
        self.mml.set_octave(o)

    def parse_increase_octave(self) -> None:
        v: Final = self._parse_optional_uint(1)
        self.mml.set_octave(self.mml.octave + v)

    def parse_decrease_octave(self) -> None:
        v: Final = self._parse_optional_uint(1)
        self.mml.set_octave(self.mml.octave - v)

    def parse_transpose(self) -> None:
        v: Final = self._parse_int("Missing key shift")
        self.mml.set_key_shift(v)

    def parse_set_default_length(self) -> None:
        self.tokenizer.skip_whitespace()
        self._set_error_pos()

        nl: Final = self.tokenizer.parse_note_length()
        ticks: Final = self.mml.calculate_note_length(nl)

        if nl.parameter.value is None:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Missing length")
        if nl.parameter.minus:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Cannot use `-` in a default length")

        self.mml.set_default_length(ticks, nl.parameter.plus)

    #
    # Volume
    #

    def parse_set_volume(self) -> None:
        v: Final = self._parse_uint("Missing volume")
        self.mml.bc.set_volume(_test_range(v, 0, MAX_VOLUME, "Volume"))

    def parse_increase_volume(self) -> None:
        v: Final = self._parse_optional_uint(1)
        self.mml.bc.increase_volume(_test_range(v, 1, MAX_VOLUME, "Volume adjust"))

    def parse_decrease_volume(self) -> None:
        v: Final = self._parse_optional_uint(1)
        self.mml.bc.decrease_volume(_test_range(v, 1, MAX_VOLUME, "Volume adjust"))

    #
    # Effects
    #

    def parse_vibrato(self) -> None:
        """
        Vibrato.

        Format:
            set vibrato:       M n1, n2, n3, n4
            set depth only:    M%n
        """
        if self.tokenizer.test_next_char("%"):
            v = self._parse_int("Missing vibrato depth")
            self.mml.bc.set_vibrato_depth(_test_range(v, SIGN_BYTE_MIN, SIGN_BYTE_MAX, "Vibrato depth"))
        else:
            error_message: Final = "M requires 4 parameters: n1, n2, n3, n4"

            n1 = self._parse_uint(error_message)
            _test_range(n1, 0, 0xFF, "Vibrato n1")
            self._parse_comma(error_message)
            n2 = self._parse_uint(error_message)
            _test_range(n2, 0, 0xFF, "Vibrato n2")
            self._parse_comma(error_message)
            n3 = self._parse_uint(error_message)
            _test_range(n3, 0, 0xFF, "Vibrato n3")
            self._parse_comma(error_message)
            n4 = self._parse_int(error_message)
            _test_range(n4, SIGN_BYTE_MIN, SIGN_BYTE_MAX, "Vibrato n4")

            self.mml.bc.set_vibrato(n1, n2, n3, n4)

    def parse_toggle_vibrato(self) -> None:
        self.mml.bc.toggle_vibrato()

    def parse_software_envelope(self) -> None:
        """
        Software envelope.

        Format:
            S n1, n2, n3, n4, n5

        NOTE: if n1 is 0 the envelope is disabled and only n1 is written to the bytecode.
        """
        error_message: Final = "S requires 5 parameters: n1, n2, n3, n4, n5"

        n1 = self._parse_int(error_message)
        _test_range(n1, I8_MIN, I8_MAX, "Envelope n1")
        self._parse_comma(error_message)
        n2 = self._parse_uint(error_message)
        _test_range(n2, 0, 0xFF, "Envelope n2")
        self._parse_comma(error_message)
        n3 = self._parse_int(error_message)
        _test_range(n3, I8_MIN, I8_MAX, "Envelope n3")
        self._parse_comma(error_message)
        n4 = self._parse_int(error_message)
        _test_range(n4, I8_MIN, I8_MAX, "Envelope n4")
        self._parse_comma(error_message)
        n5 = self._parse_int(error_message)
        _test_range(n5, SIGN_BYTE_MIN, SIGN_BYTE_MAX, "Envelope n5")

        self.mml.bc.software_envelope(n1, n2, n3, n4, n5)

    def parse_detune(self) -> None:
        """
        Detune.

        Format:
            absolute:   U%n
            relative:   U+n or U-n
        """
        if self.tokenizer.test_next_char("%"):
            v = self._parse_int("Missing detune value")
            self.mml.bc.set_detune(_test_range(v, SIGN_BYTE_MIN, SIGN_BYTE_MAX, "Detune"))
        elif self.tokenizer.peek() in ("+", "-"):
            v = self._parse_int("Missing detune value")
            self.mml.bc.adjust_detune(_test_range(v, SIGN_BYTE_MIN, SIGN_BYTE_MAX, "Detune adjust"))
        else:
            raise MmlCommandError(ErrorKind.PARAMETER_RANGE, "Invalid U format, expected U%n, U+n or U-n")

    def parse_noise_frequency(self) -> None:
        self.tokenizer.skip_whitespace()
        if self.tokenizer.peek() in ("+", "-"):
            v = self._parse_int("Missing noise frequency")
            _test_range(v, -MAX_NOISE_FREQUENCY, MAX_NOISE_FREQUENCY, "Noise frequency adjust")
            self.mml.bc.adjust_noise_frequency(v)
        else:
            v = self._parse_uint("Missing noise frequency")
            _test_range(v, 0, MAX_NOISE_FREQUENCY, "Noise frequency")
            self.mml.bc.set_noise_frequency(v)

    def parse_noise_mode(self) -> None:
        m: Final = self._parse_uint("Missing noise mode")
        self.mml.bc.set_noise_mode(_test_range(m, 1, 3, "Noise mode"))

    #
    # Misc
    #

    def parse_gate_time(self) -> None:
        q: Final = self._parse_uint("Missing gate time")
        self.mml.bc.set_gate_time(_test_range(q, 0, 0xFF, "Gate time"))

    def parse_tempo(self) -> None:
        error_message: Final = "T requires 2 parameters: n1, n2"

        n1 = self._parse_uint(error_message)
        _test_range(n1, 1, 0xFF, "Tempo n1")
        self._parse_comma(error_message)
        n2 = self._parse_uint(error_message)
        _test_range(n2, 0, 0xFF, "Tempo n2")

        self.mml.bc.set_tempo(n1, n2)

    def parse_write_work_area(self) -> None:
        v: Final = self._parse_uint("Missing work area value")
        self.mml.bc.write_work_area(_test_range(v, 0, 0xFF, "Work area value"))

    def parse_comment(self) -> None:
        self.tokenizer.skip_to_end_of_line()

    #
    # Control
    #

    def parse_set_loop_point(self) -> None:
        self.mml.set_loop_point()

    def parse_stop_channel(self) -> None:
        self.mml.stop_channel()
        self.tokenizer.skip_to_end_of_line()

    def parse_start_loop(self) -> None:
        self.mml.start_loop()

    def parse_skip_last_loop(self) -> None:
        self.mml.skip_last_loop()

    def parse_end_loop(self) -> None:
        self.mml.test_in_loop()

        loop_count: Final = self._parse_uint("Missing loop count")
        self.mml.end_loop(loop_count)

    PARSERS: Final = {
        "O": parse_set_octave,
        ">": parse_increase_octave,
        "<": parse_decrease_octave,
        "_": parse_transpose,
        "L": parse_set_default_length,
        "V": parse_set_volume,
        "(": parse_increase_volume,
        ")": parse_decrease_volume,
        "M": parse_vibrato,
        "N": parse_toggle_vibrato,
        "S": parse_software_envelope,
        "U": parse_detune,
        "W": parse_noise_frequency,
        "P": parse_noise_mode,
        "Q": parse_gate_time,
        "T": parse_tempo,
        "I": parse_write_work_area,
        "J": parse_set_loop_point,
        "X": parse_stop_channel,
        "[": parse_start_loop,
        ":": parse_skip_last_loop,
        "]": parse_end_loop,
        ";": parse_comment,
    }

    def parse_statement(self) -> None:
        c: Final = self.tokenizer.next_char()
        if c is None or c == "\n":
            return

        t: Final = c.upper()

        if t in NOTE_MAP:
            self.parse_note(t)
        elif t == REST:
            self.parse_rest()
        else:
            p = self.PARSERS.get(t)
            if p:
                p(self)
            else:
                raise MmlCommandError(ErrorKind.SYNTAX, f"Unknown command: {c}")

    def parse_line(self, line_number: int) -> Optional[MmlError]:
        "Parses statements until the line ends or an error occurs"

        while not self.mml.stopped:
            self.tokenizer.skip_whitespace()
            if self.tokenizer.at_end():
                break

            self._set_error_pos()

            try:
                self.parse_statement()
            except MmlCommandError as e:
                column = e.column if e.column is not None else self._error_pos
                return MmlError(e.kind, e.message, line_number, column)
            except BytecodeError as e:
                return MmlError(ErrorKind.INTERNAL, str(e), line_number, self.tokenizer.get_pos())

        return None


class ChannelCompiler:
    """
    Compiles the MML lines of a single channel.

    `compile_line()` is called for each line of the channel, followed by a single `finish()` call.
    """

    def __init__(self, config: CompilerConfig = DEFAULT_CONFIG):
        self.config: Final = config
        self.mml: Final = MmlCommands(config)

        self.last_line_number: int = 0
        self._finished: bool = False

    @property
    def stopped(self) -> bool:
        return self.mml.stopped

    def compile_line(self, text: str, line_number: int, char_start: int = 0) -> Optional[MmlError]:
        if self._finished:
            raise RuntimeError("Cannot compile a line after the channel has been finished")

        self.last_line_number = line_number

        if self.mml.stopped:
            return None

        parser: Final = MmlParser(Tokenizer(text, char_start), self.mml)
        return parser.parse_line(line_number)

    def finish(self) -> Optional[MmlError]:
        "Checks all loops have been closed and appends the end of channel marker"

        if self._finished:
            raise RuntimeError("Channel already finished")
        self._finished = True

        try:
            self.mml.end()
        except MmlCommandError as e:
            return MmlError(e.kind, e.message, self.last_line_number, None)
        except BytecodeError as e:
            return MmlError(ErrorKind.INTERNAL, str(e), self.last_line_number, None)

        return None

    def bytecode(self) -> bytes:
        return self.mml.bc.get_bytecode()

    def __len__(self) -> int:
        return len(self.mml.bc)


class ChannelData(NamedTuple):
    name: str
    bytecode: bytes
    # Line number of the last line compiled by this channel (0 if no lines)
    last_line_number: int


class MmlData(NamedTuple):
    channels: list[ChannelData]


def compile_channel(name: str, lines: list[Line], config: CompilerConfig, errors: list[MmlError]) -> ChannelData:
    channel: Final = ChannelCompiler(config)

    for line in lines:
        e = channel.compile_line(line.text, line.line_number, line.char_start)
        if e:
            errors.append(e)

    e = channel.finish()
    if e:
        errors.append(e)

    return ChannelData(name=name, bytecode=channel.bytecode(), last_line_number=channel.last_line_number)


def compile_mml(mml_text: str, config: CompilerConfig = DEFAULT_CONFIG) -> MmlData:
    mml_lines: Final = split_lines(mml_text)

    errors: Final[list[MmlError]] = list()

    channels: Final = [
        compile_channel(name, c_lines, config, errors) for name, c_lines in zip(CHANNEL_NAMES, mml_lines.channels)
    ]

    if errors:
        errors.sort(key=lambda e: (e.line_number, e.column or 0))
        raise CompileError(errors)

    return MmlData(channels)
