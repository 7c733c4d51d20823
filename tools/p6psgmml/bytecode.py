# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

from typing import Final, Optional

from .driver_constants import (
    CH_BUF_SIZE,
    MIN_OCTAVE,
    MAX_OCTAVE,
    MAX_NOTE_TICKS,
    MAX_DEFAULT_LENGTH,
    MAX_VOLUME,
    MAX_NOISE_FREQUENCY,
    MIN_LOOP_COUNT,
    MAX_LOOP_COUNT,
    OCTAVE,
    SET_VOLUME,
    DECREASE_VOLUME,
    INCREASE_VOLUME,
    STOP_CHANNEL,
    SOFTWARE_ENVELOPE,
    SET_NOISE_FREQUENCY,
    ADJUST_NOISE_FREQUENCY,
    NOISE_MODE_1,
    START_LOOP,
    END_LOOP_SHORT,
    END_LOOP_LONG,
    SKIP_LAST_LOOP,
    WRITE_WORK_AREA,
    SET_VIBRATO,
    TOGGLE_VIBRATO,
    SET_DEFAULT_PLUS_LENGTH,
    SET_TEMPO,
    SET_DEFAULT_LENGTH,
    SET_GATE_TIME,
    SET_DETUNE,
    ADJUST_DETUNE,
    SET_VIBRATO_DEPTH,
    LOOP_POINT,
    END,
    NOTE_TIE_BIT,
    NOTE_LENGTH_SHIFT,
    NOTE_TONE_MASK,
    LENGTH_DEFAULT,
    LENGTH_DEFAULT_PLUS,
    LENGTH_U8,
    LENGTH_U16,
    SKIP_LAST_LOOP_SIZE,
    END_LOOP_LONG_SIZE,
    END_LOOP_SHORT_SIZE,
)


I8_MIN: Final = -128
I8_MAX: Final = 127

SIGN_BYTE_MIN: Final = -127
SIGN_BYTE_MAX: Final = 127


def cast_i8(i: int) -> int:
    "Cast an i8 to a u8 with boundary checking."
    if i < I8_MIN or i > I8_MAX:
        raise ValueError(f"i8 integer out of bounds: {i}")
    if i < 0:
        return i + 0x100
    return i


def sign_byte(i: int) -> int:
    """
    Signed-magnitude byte.

    bit 7 is the sign, bits 0-6 are the absolute value.
    """
    if i < SIGN_BYTE_MIN or i > SIGN_BYTE_MAX:
        raise ValueError(f"signed-magnitude integer out of bounds: {i}")
    if i < 0:
        return 0x80 | -i
    return i


def length_class(ticks: int, default_length: int, default_plus_length: int) -> int:
    if ticks == default_length:
        return LENGTH_DEFAULT
    elif ticks == default_plus_length:
        return LENGTH_DEFAULT_PLUS
    elif ticks <= 0xFF:
        return LENGTH_U8
    else:
        return LENGTH_U16


def note_header(tone: int, tie: bool, lc: int) -> int:
    return (NOTE_TIE_BIT if tie else 0) | (lc << NOTE_LENGTH_SHIFT) | (tone & NOTE_TONE_MASK)


class BytecodeError(Exception):
    pass


class Bytecode:
    """
    Append-only bytecode buffer for a single channel.

    Loop instructions are written with placeholder bytes that are filled in by `end_loop()`.
    """

    def __init__(self, buffer_size: int = CH_BUF_SIZE) -> None:
        self.buffer_size: Final = buffer_size
        self.bytecode = bytearray()

    def get_bytecode(self) -> bytes:
        return bytes(self.bytecode)

    def __len__(self) -> int:
        return len(self.bytecode)

    def _append(self, *values: int) -> None:
        # An instruction is either written in full or not at all
        if len(self.bytecode) + len(values) > self.buffer_size:
            raise BytecodeError(f"Compiled output is larger than the output buffer ({self.buffer_size} bytes)")
        self.bytecode.extend(values)

    def play_note(
        self, tone: int, tie: bool, ticks: int, default_length: int, default_plus_length: int, octave: Optional[int] = None
    ) -> None:
        "Play a note or a rest (tone 0), preceded by an octave instruction if `octave` is not None"

        if octave is not None and (octave < MIN_OCTAVE or octave > MAX_OCTAVE):
            raise BytecodeError(f"Octave out of range ({MIN_OCTAVE}-{MAX_OCTAVE})")
        if tone < 0 or tone > 12:
            raise BytecodeError("tone is out of range")
        if ticks < 1 or ticks > MAX_NOTE_TICKS:
            raise BytecodeError("Note length is out of range")

        lc: Final = length_class(ticks, default_length, default_plus_length)

        out = [OCTAVE | octave] if octave is not None else []
        out.append(note_header(tone, tie, lc))
        if lc == LENGTH_U8:
            out.append(ticks)
        elif lc == LENGTH_U16:
            out += (ticks & 0xFF, ticks >> 8)

        self._append(*out)

    def set_volume(self, v: int) -> None:
        if v < 0 or v > MAX_VOLUME:
            raise BytecodeError(f"Volume out of range (0-{MAX_VOLUME})")
        self._append(SET_VOLUME + v)

    def increase_volume(self, v: int) -> None:
        if v < 1 or v > MAX_VOLUME:
            raise BytecodeError(f"Volume adjust out of range (1-{MAX_VOLUME})")
        self._append(INCREASE_VOLUME + v)

    def decrease_volume(self, v: int) -> None:
        if v < 1 or v > MAX_VOLUME:
            raise BytecodeError(f"Volume adjust out of range (1-{MAX_VOLUME})")
        self._append(DECREASE_VOLUME + v)

    def write_work_area(self, v: int) -> None:
        if v < 0 or v > 0xFF:
            raise BytecodeError("Work area value out of range (0-255)")
        self._append(WRITE_WORK_AREA, v)

    def loop_point(self) -> None:
        self._append(LOOP_POINT)

    def set_default_length(self, ticks: int) -> None:
        if ticks < 1 or ticks > MAX_DEFAULT_LENGTH:
            raise BytecodeError(f"Default length out of range (1-{MAX_DEFAULT_LENGTH})")
        self._append(SET_DEFAULT_LENGTH, ticks)

    def set_default_plus_length(self, ticks: int) -> None:
        if ticks < 1 or ticks > MAX_DEFAULT_LENGTH:
            raise BytecodeError(f"Default length out of range (1-{MAX_DEFAULT_LENGTH})")
        self._append(SET_DEFAULT_PLUS_LENGTH, ticks)

    def set_vibrato(self, n1: int, n2: int, n3: int, n4: int) -> None:
        for n in (n1, n2, n3):
            if n < 0 or n > 0xFF:
                raise BytecodeError("Vibrato parameter out of range (0-255)")
        self._append(SET_VIBRATO, n1, n2, n3, sign_byte(n4))

    def set_vibrato_depth(self, depth: int) -> None:
        self._append(SET_VIBRATO_DEPTH, sign_byte(depth))

    def toggle_vibrato(self) -> None:
        self._append(TOGGLE_VIBRATO)

    def set_noise_mode(self, mode: int) -> None:
        if mode < 1 or mode > 3:
            raise BytecodeError("Noise mode out of range (1-3)")
        self._append(NOISE_MODE_1 + mode - 1)

    def set_gate_time(self, q: int) -> None:
        if q < 0 or q > 0xFF:
            raise BytecodeError("Gate time out of range (0-255)")
        self._append(SET_GATE_TIME, q)

    def software_envelope(self, n1: int, n2: int, n3: int, n4: int, n5: int) -> None:
        if n2 < 0 or n2 > 0xFF:
            raise BytecodeError("Envelope parameter out of range (0-255)")

        if n1 == 0:
            # Envelope off, the other parameters are not written
            self._append(SOFTWARE_ENVELOPE, 0)
        else:
            self._append(SOFTWARE_ENVELOPE, cast_i8(n1), n2, cast_i8(n3), cast_i8(n4), sign_byte(n5))

    def set_tempo(self, n1: int, n2: int) -> None:
        if n1 < 1 or n1 > 0xFF or n2 < 0 or n2 > 0xFF:
            raise BytecodeError("Tempo out of range")
        self._append(SET_TEMPO, n1, n2)

    def set_detune(self, d: int) -> None:
        self._append(SET_DETUNE, sign_byte(d))

    def adjust_detune(self, d: int) -> None:
        if d < SIGN_BYTE_MIN or d > SIGN_BYTE_MAX:
            raise BytecodeError("Detune adjust out of range")
        self._append(ADJUST_DETUNE, cast_i8(d))

    def set_noise_frequency(self, f: int) -> None:
        if f < 0 or f > MAX_NOISE_FREQUENCY:
            raise BytecodeError(f"Noise frequency out of range (0-{MAX_NOISE_FREQUENCY})")
        self._append(SET_NOISE_FREQUENCY, f)

    def adjust_noise_frequency(self, f: int) -> None:
        if f < -MAX_NOISE_FREQUENCY or f > MAX_NOISE_FREQUENCY:
            raise BytecodeError(f"Noise frequency adjust out of range (-{MAX_NOISE_FREQUENCY}-{MAX_NOISE_FREQUENCY})")
        self._append(ADJUST_NOISE_FREQUENCY, cast_i8(f))

    def stop_channel(self) -> None:
        self._append(STOP_CHANNEL)

    def end(self) -> None:
        self._append(END)

    def start_loop(self) -> int:
        """
        Writes a `start_loop` instruction with a placeholder loop count.

        Returns the position of the loop body (the target of the `end_loop` jump).
        """
        self._append(START_LOOP, 0)
        return len(self.bytecode)

    def skip_last_loop(self) -> int:
        """
        Writes a `skip_last_loop` instruction with a placeholder jump offset.

        Returns the position after the instruction (used by `end_loop()` to patch the jump offset).
        """
        self._append(SKIP_LAST_LOOP, 0, 0)
        return len(self.bytecode)

    def end_loop(self, loop_count: int, loop_body: int, skip_last_loop_pos: Optional[int]) -> None:
        if loop_count < MIN_LOOP_COUNT or loop_count > MAX_LOOP_COUNT:
            raise BytecodeError(f"Loop count out of range ({MIN_LOOP_COUNT}-{MAX_LOOP_COUNT})")
        if loop_body < 2 or loop_body > len(self.bytecode) or self.bytecode[loop_body - 2] != START_LOOP:
            raise BytecodeError("Invalid loop body position")

        # Jump offsets are relative to the end of the jump instruction
        offset = loop_body - (len(self.bytecode) + END_LOOP_LONG_SIZE)
        if offset >= -0x100 and offset <= -1:
            offset += END_LOOP_LONG_SIZE - END_LOOP_SHORT_SIZE
            self._append(END_LOOP_SHORT, offset & 0xFF)
        else:
            self._append(END_LOOP_LONG, offset & 0xFF, (offset >> 8) & 0xFF)

        self.bytecode[loop_body - 1] = loop_count

        # Write the parameter of the `skip_last_loop` instruction (if required)
        if skip_last_loop_pos is not None:
            sll: Final = skip_last_loop_pos - SKIP_LAST_LOOP_SIZE
            if sll < loop_body or self.bytecode[sll] != SKIP_LAST_LOOP:
                raise BytecodeError("Invalid skip_last_loop position")

            to_skip: Final = len(self.bytecode) - skip_last_loop_pos
            self.bytecode[sll + 1] = to_skip & 0xFF
            self.bytecode[sll + 2] = (to_skip >> 8) & 0xFF
