# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

from typing import Final, NamedTuple, Optional

from .driver_constants import (
    OCTAVE,
    MIN_OCTAVE,
    MAX_OCTAVE,
    SET_VOLUME,
    DECREASE_VOLUME,
    INCREASE_VOLUME,
    STOP_CHANNEL,
    SOFTWARE_ENVELOPE,
    SET_NOISE_FREQUENCY,
    ADJUST_NOISE_FREQUENCY,
    NOISE_MODE_1,
    NOISE_MODE_3,
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
    REST_TONE,
)


TONE_NAMES: Final = ("r", "c", "c+", "d", "d+", "e", "f", "f+", "g", "g+", "a", "a+", "b")


class DisassemblyError(Exception):
    pass


class Instruction(NamedTuple):
    offset: int
    opcode: int
    operands: bytes
    text: str
    # Absolute bytecode offset of a jump instruction's target
    jump_target: Optional[int] = None

    def size(self) -> int:
        return 1 + len(self.operands)

    def end(self) -> int:
        return self.offset + self.size()


def _i8(b: int) -> int:
    return b - 0x100 if b & 0x80 else b


def _sign_byte(b: int) -> int:
    return -(b & 0x7F) if b & 0x80 else b


def _u16(operands: bytes) -> int:
    return operands[0] | (operands[1] << 8)


def _i16(operands: bytes) -> int:
    v = _u16(operands)
    return v - 0x10000 if v & 0x8000 else v


# Number of operand bytes for the fixed-size opcodes
OPERAND_SIZES: Final = {
    STOP_CHANNEL: 0,
    SET_NOISE_FREQUENCY: 1,
    ADJUST_NOISE_FREQUENCY: 1,
    START_LOOP: 1,
    END_LOOP_SHORT: 1,
    END_LOOP_LONG: 2,
    SKIP_LAST_LOOP: 2,
    WRITE_WORK_AREA: 1,
    SET_VIBRATO: 4,
    TOGGLE_VIBRATO: 0,
    SET_DEFAULT_PLUS_LENGTH: 1,
    SET_TEMPO: 2,
    SET_DEFAULT_LENGTH: 1,
    SET_GATE_TIME: 1,
    SET_DETUNE: 1,
    ADJUST_DETUNE: 1,
    SET_VIBRATO_DEPTH: 1,
    LOOP_POINT: 0,
    END: 0,
}


def _note_text(opcode: int, operands: bytes) -> str:
    tone: Final = opcode & NOTE_TONE_MASK
    lc: Final = (opcode >> NOTE_LENGTH_SHIFT) & 3

    name = TONE_NAMES[tone] if tone <= 12 else f"?{tone}"

    if lc == LENGTH_DEFAULT:
        length = "L"
    elif lc == LENGTH_DEFAULT_PLUS:
        length = "L+"
    elif lc == LENGTH_U8:
        length = f"%{operands[0]}"
    else:
        length = f"%{_u16(operands)}"

    text = f"{'rest' if tone == REST_TONE else 'note'} {name} {length}"
    if opcode & NOTE_TIE_BIT:
        text += " &"
    return text


def _decode_instruction(data: bytes, offset: int) -> Instruction:
    opcode: Final = data[offset]

    def operands(n: int) -> bytes:
        if offset + 1 + n > len(data):
            raise DisassemblyError(f"${offset:04x}: Missing operands for opcode ${opcode:02x}")
        return bytes(data[offset + 1 : offset + 1 + n])

    if opcode < OCTAVE:
        lc = (opcode >> NOTE_LENGTH_SHIFT) & 3
        ops = operands(0 if lc < LENGTH_U8 else lc - LENGTH_U8 + 1)
        return Instruction(offset, opcode, ops, _note_text(opcode, ops))

    if opcode < SET_VOLUME:
        octave = opcode & 0x0F
        if octave < MIN_OCTAVE or octave > MAX_OCTAVE:
            raise DisassemblyError(f"${offset:04x}: Invalid octave opcode ${opcode:02x}")
        return Instruction(offset, opcode, b"", f"octave {octave}")

    if opcode < DECREASE_VOLUME:
        return Instruction(offset, opcode, b"", f"volume {opcode - SET_VOLUME}")

    if opcode < INCREASE_VOLUME + 0x10 and opcode & 0x0F != 0:
        if opcode < INCREASE_VOLUME:
            return Instruction(offset, opcode, b"", f"decrease_volume {opcode - DECREASE_VOLUME}")
        else:
            return Instruction(offset, opcode, b"", f"increase_volume {opcode - INCREASE_VOLUME}")

    if opcode == SOFTWARE_ENVELOPE:
        ops = operands(1)
        if ops[0] == 0:
            return Instruction(offset, opcode, ops, "software_envelope off")
        ops = operands(5)
        return Instruction(
            offset,
            opcode,
            ops,
            f"software_envelope {_i8(ops[0])}, {ops[1]}, {_i8(ops[2])}, {_i8(ops[3])}, {_sign_byte(ops[4])}",
        )

    if NOISE_MODE_1 <= opcode <= NOISE_MODE_3:
        return Instruction(offset, opcode, b"", f"noise_mode {opcode - NOISE_MODE_1 + 1}")

    n_operands = OPERAND_SIZES.get(opcode)
    if n_operands is None:
        raise DisassemblyError(f"${offset:04x}: Unknown opcode ${opcode:02x}")

    ops = operands(n_operands)
    end: Final = offset + 1 + n_operands

    if opcode == END_LOOP_SHORT:
        # The high byte of the (negative) offset is implied
        target = end + (0xFF00 | ops[0]) - 0x10000
        return Instruction(offset, opcode, ops, f"end_loop ${target:04x}", target)
    elif opcode == END_LOOP_LONG:
        target = end + _i16(ops)
        return Instruction(offset, opcode, ops, f"end_loop ${target:04x}", target)
    elif opcode == SKIP_LAST_LOOP:
        target = end + _u16(ops)
        return Instruction(offset, opcode, ops, f"skip_last_loop ${target:04x}", target)

    if opcode == START_LOOP:
        text = f"start_loop {ops[0]}"
    elif opcode == SET_VIBRATO:
        text = f"set_vibrato {ops[0]}, {ops[1]}, {ops[2]}, {_sign_byte(ops[3])}"
    elif opcode == SET_TEMPO:
        text = f"set_tempo {ops[0]}, {ops[1]}"
    elif opcode in (SET_DETUNE, SET_VIBRATO_DEPTH):
        text = f"{_OPCODE_NAMES[opcode]} {_sign_byte(ops[0])}"
    elif opcode in (ADJUST_DETUNE, ADJUST_NOISE_FREQUENCY):
        text = f"{_OPCODE_NAMES[opcode]} {_i8(ops[0]):+}"
    elif n_operands == 1:
        text = f"{_OPCODE_NAMES[opcode]} {ops[0]}"
    else:
        text = _OPCODE_NAMES[opcode]

    return Instruction(offset, opcode, ops, text)


_OPCODE_NAMES: Final = {
    STOP_CHANNEL: "stop_channel",
    SET_NOISE_FREQUENCY: "set_noise_frequency",
    ADJUST_NOISE_FREQUENCY: "adjust_noise_frequency",
    WRITE_WORK_AREA: "write_work_area",
    TOGGLE_VIBRATO: "toggle_vibrato",
    SET_DEFAULT_PLUS_LENGTH: "set_default_plus_length",
    SET_DEFAULT_LENGTH: "set_default_length",
    SET_GATE_TIME: "set_gate_time",
    SET_DETUNE: "set_detune",
    ADJUST_DETUNE: "adjust_detune",
    SET_VIBRATO_DEPTH: "set_vibrato_depth",
    LOOP_POINT: "loop_point",
    END: "end",
}


def disassemble(data: bytes) -> list[Instruction]:
    out = list()

    offset = 0
    while offset < len(data):
        inst = _decode_instruction(data, offset)
        out.append(inst)
        offset = inst.end()

    return out


def listing(data: bytes, base_address: int = 0) -> str:
    return "\n".join(
        f"${base_address + i.offset:04x}: {' '.join(f'{b:02x}' for b in (i.opcode, *i.operands)):<18} {i.text}"
        for i in disassemble(data)
    )
