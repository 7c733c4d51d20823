# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

from typing import Final, TypeAlias


Addr: TypeAlias = int


N_PSG_CHANNELS: Final = 3

# Per-channel output buffer size
CH_BUF_SIZE: Final = 32768


# Song image header.  MUST match the playback driver.
CHANNEL_ADDR_OFFSETS: Final = (0, 2, 4)
SONG_HEADER_SIZE: Final = 8
MAX_ADDR: Final[Addr] = 0xFFFF


# Ticks per whole note
TICKS_PER_WHOLE_NOTE: Final = 96

# Note length denominators that produce an integer number of ticks
VALID_NOTE_DENOMINATORS: Final = (1, 2, 3, 4, 6, 8, 12, 16, 24, 32, 48, 96)

STARTING_DEFAULT_LENGTH: Final = 24
STARTING_DEFAULT_PLUS_LENGTH: Final = 192
STARTING_OCTAVE: Final = 4

MIN_OCTAVE: Final = 1
MAX_OCTAVE: Final = 8

MAX_NOTE_TICKS: Final = 32767
MAX_CLOCK_TICKS: Final = 0xFF
MAX_DEFAULT_LENGTH: Final = 0xFF

MAX_KEY_SHIFT: Final = 12
SEMITONES_PER_OCTAVE: Final = 12

MAX_VOLUME: Final = 15
MAX_NOISE_FREQUENCY: Final = 31

MIN_LOOP_COUNT: Final = 2
MAX_LOOP_COUNT: Final = 255
MAX_NESTED_LOOPS: Final = 4

# Parameter values saturate at this value
MAX_PARAMETER_VALUE: Final = 0xFFFF


# Opcode values MUST MATCH the playback driver

OCTAVE: Final = 0x80
SET_VOLUME: Final = 0x90
DECREASE_VOLUME: Final = 0xA0
INCREASE_VOLUME: Final = 0xB0

STOP_CHANNEL: Final = 0xE9
SOFTWARE_ENVELOPE: Final = 0xEA
SET_NOISE_FREQUENCY: Final = 0xEB
ADJUST_NOISE_FREQUENCY: Final = 0xEC
NOISE_MODE_1: Final = 0xED
NOISE_MODE_2: Final = 0xEE
NOISE_MODE_3: Final = 0xEF

START_LOOP: Final = 0xF0
END_LOOP_SHORT: Final = 0xF1
END_LOOP_LONG: Final = 0xF2
SKIP_LAST_LOOP: Final = 0xF3

WRITE_WORK_AREA: Final = 0xF4
SET_VIBRATO: Final = 0xF5
TOGGLE_VIBRATO: Final = 0xF6
SET_DEFAULT_PLUS_LENGTH: Final = 0xF7
SET_TEMPO: Final = 0xF8
SET_DEFAULT_LENGTH: Final = 0xF9
SET_GATE_TIME: Final = 0xFA
SET_DETUNE: Final = 0xFB
ADJUST_DETUNE: Final = 0xFC
SET_VIBRATO_DEPTH: Final = 0xFD
LOOP_POINT: Final = 0xFE
END: Final = 0xFF


# Note header bits
NOTE_TIE_BIT: Final = 0x40
NOTE_LENGTH_SHIFT: Final = 4
NOTE_TONE_MASK: Final = 0x0F

# Note header length classes
LENGTH_DEFAULT: Final = 0b00
LENGTH_DEFAULT_PLUS: Final = 0b01
LENGTH_U8: Final = 0b10
LENGTH_U16: Final = 0b11

REST_TONE: Final = 0


# Instruction sizes used when calculating jump offsets
SKIP_LAST_LOOP_SIZE: Final = 3
END_LOOP_LONG_SIZE: Final = 3
END_LOOP_SHORT_SIZE: Final = 2


assert NOISE_MODE_2 == NOISE_MODE_1 + 1
assert NOISE_MODE_3 == NOISE_MODE_2 + 1
assert MAX_VOLUME & 0x0F == MAX_VOLUME
assert MAX_OCTAVE | OCTAVE < SET_VOLUME
