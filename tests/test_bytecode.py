"""Tests for the bytecode emitter and disassembler."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'tools'))

from p6psgmml.bytecode import Bytecode, BytecodeError, cast_i8, sign_byte, length_class, note_header
from p6psgmml.driver_constants import LENGTH_DEFAULT, LENGTH_DEFAULT_PLUS, LENGTH_U8, LENGTH_U16
from p6psgmml.disassembler import DisassemblyError, disassemble, listing


class TestHelpers(unittest.TestCase):

    def test_cast_i8(self):
        self.assertEqual(cast_i8(0), 0)
        self.assertEqual(cast_i8(127), 0x7F)
        self.assertEqual(cast_i8(-1), 0xFF)
        self.assertEqual(cast_i8(-128), 0x80)
        with self.assertRaises(ValueError):
            cast_i8(128)
        with self.assertRaises(ValueError):
            cast_i8(-129)

    def test_sign_byte(self):
        self.assertEqual(sign_byte(0), 0)
        self.assertEqual(sign_byte(5), 0x05)
        self.assertEqual(sign_byte(-5), 0x85)
        self.assertEqual(sign_byte(-127), 0xFF)
        with self.assertRaises(ValueError):
            sign_byte(-128)

    def test_length_class(self):
        self.assertEqual(length_class(24, 24, 192), LENGTH_DEFAULT)
        self.assertEqual(length_class(192, 24, 192), LENGTH_DEFAULT_PLUS)
        self.assertEqual(length_class(24, 24, 24), LENGTH_DEFAULT)
        self.assertEqual(length_class(255, 24, 192), LENGTH_U8)
        self.assertEqual(length_class(256, 24, 192), LENGTH_U16)

    def test_note_header(self):
        self.assertEqual(note_header(1, False, LENGTH_DEFAULT), 0x01)
        self.assertEqual(note_header(12, True, LENGTH_U16), 0x7C)
        self.assertEqual(note_header(0, False, LENGTH_U8), 0x20)


class TestBytecode(unittest.TestCase):

    def test_play_note(self):
        bc = Bytecode()
        bc.play_note(1, False, 24, 24, 192)
        bc.play_note(3, True, 192, 24, 192)
        bc.play_note(5, False, 100, 24, 192)
        bc.play_note(0, False, 1000, 24, 192)
        self.assertEqual(bc.get_bytecode(), bytes([0x01, 0x53, 0x25, 100, 0x30, 0xE8, 0x03]))

    def test_play_note_with_octave(self):
        bc = Bytecode()
        bc.play_note(1, False, 12, 24, 192, 5)
        self.assertEqual(bc.get_bytecode(), bytes([0x85, 0x21, 0x0C]))

        bc = Bytecode(2)
        with self.assertRaises(BytecodeError):
            bc.play_note(1, False, 12, 24, 192, 5)
        self.assertEqual(len(bc), 0)

    def test_play_note_range(self):
        bc = Bytecode()
        with self.assertRaises(BytecodeError):
            bc.play_note(13, False, 24, 24, 192)
        with self.assertRaises(BytecodeError):
            bc.play_note(1, False, 0, 24, 192)
        with self.assertRaises(BytecodeError):
            bc.play_note(1, False, 32768, 24, 192)

    def test_buffer_size(self):
        bc = Bytecode(2)
        bc.set_volume(1)
        with self.assertRaises(BytecodeError):
            bc.set_tempo(1, 1)
        self.assertEqual(len(bc), 1)
        bc.toggle_vibrato()
        self.assertEqual(bc.get_bytecode(), bytes([0x91, 0xF6]))

    def test_software_envelope(self):
        bc = Bytecode()
        bc.software_envelope(0, 1, 2, 3, 4)
        bc.software_envelope(-2, 200, -128, 127, -127)
        self.assertEqual(bc.get_bytecode(), bytes([0xEA, 0x00, 0xEA, 0xFE, 200, 0x80, 0x7F, 0xFF]))

    def test_loop(self):
        bc = Bytecode()
        body = bc.start_loop()
        bc.set_volume(2)
        skip = bc.skip_last_loop()
        bc.set_volume(3)
        bc.end_loop(4, body, skip)
        self.assertEqual(bc.get_bytecode(), bytes([0xF0, 0x04, 0x92, 0xF3, 0x03, 0x00, 0x93, 0xF1, 0xF9]))

    def test_long_skip_last_loop(self):
        bc = Bytecode()
        body = bc.start_loop()
        skip = bc.skip_last_loop()
        for i in range(300):
            bc.toggle_vibrato()
        bc.end_loop(2, body, skip)

        self.assertEqual(bc.bytecode[3:5], bytes([0x2F, 0x01]))
        self.assertEqual(bc.bytecode[-3], 0xF2)

        instructions = disassemble(bc.get_bytecode())
        self.assertEqual(instructions[1].jump_target, len(bc))
        self.assertEqual(instructions[-1].jump_target, body)

    def test_end_loop_errors(self):
        bc = Bytecode()
        body = bc.start_loop()
        bc.set_volume(1)
        with self.assertRaises(BytecodeError):
            bc.end_loop(1, body, None)
        with self.assertRaises(BytecodeError):
            bc.end_loop(256, body, None)
        with self.assertRaises(BytecodeError):
            bc.end_loop(2, 1, None)
        with self.assertRaises(BytecodeError):
            bc.end_loop(2, body, 3)

    def test_parameter_ranges(self):
        bc = Bytecode()
        for f in (
            lambda: bc.play_note(1, False, 24, 24, 192, 0),
            lambda: bc.play_note(1, False, 24, 24, 192, 9),
            lambda: bc.set_volume(16),
            lambda: bc.increase_volume(0),
            lambda: bc.decrease_volume(16),
            lambda: bc.set_default_length(0),
            lambda: bc.set_default_plus_length(256),
            lambda: bc.set_noise_mode(4),
            lambda: bc.set_tempo(0, 0),
            lambda: bc.set_noise_frequency(32),
            lambda: bc.adjust_noise_frequency(-32),
        ):
            with self.assertRaises(BytecodeError):
                f()
        self.assertEqual(len(bc), 0)


class TestDisassembler(unittest.TestCase):

    def test_instructions(self):
        data = bytes([0x84, 0x01, 0x21, 0x0C, 0x9F, 0xA2, 0xB3, 0xF8, 0x78, 0x00, 0xFB, 0x85, 0xEC, 0xFD,
                      0xEA, 0x00, 0xEE, 0xFE, 0xFF])
        self.assertEqual([i.text for i in disassemble(data)], [
            "octave 4",
            "note c L",
            "note c %12",
            "volume 15",
            "decrease_volume 2",
            "increase_volume 3",
            "set_tempo 120, 0",
            "set_detune -5",
            "adjust_noise_frequency -3",
            "software_envelope off",
            "noise_mode 2",
            "loop_point",
            "end",
        ])

    def test_listing(self):
        text = listing(bytes([0xF0, 0x02, 0x01, 0xF1, 0xFD, 0xFF]), 0x8000)
        lines = text.split("\n")
        self.assertEqual(len(lines), 4)
        self.assertTrue(lines[0].startswith("$8000: f0 02"))
        self.assertTrue(lines[0].endswith("start_loop 2"))
        self.assertTrue(lines[2].endswith("end_loop $0002"))

    def test_invalid_opcodes(self):
        for b in (0x80, 0x89, 0xA0, 0xB0, 0xC0, 0xE8):
            with self.assertRaises(DisassemblyError):
                disassemble(bytes([b]))

    def test_missing_operands(self):
        for data in ([0x21], [0x31, 0x00], [0xF5, 1, 2], [0xEA, 0x01, 0x02]):
            with self.assertRaises(DisassemblyError):
                disassemble(bytes(data))


if __name__ == '__main__':
    unittest.main(verbosity=2)
