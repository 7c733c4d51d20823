"""Tests for the song image, error printing and the command line compiler."""

import io
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'tools'))

from p6psgmml.mml_compiler import ChannelData, CompileError, ErrorKind, MmlData, MmlError, compile_mml
from p6psgmml.errors import FileError, print_error, print_source_line
from p6psgmml.songs import build_song_image, song_layout, layout_string
from p6psgmml.cli import main, parse_address, parse_arguments


SONG = "D CDE\nF C\n"

SONG_DATA = bytes([0x01, 0x03, 0x05, 0xFF, 0xFF, 0x01, 0xFF])


class TestSongImage(unittest.TestCase):

    def test_image(self):
        image = build_song_image(compile_mml(SONG))
        self.assertEqual(image[:8], bytes([0x08, 0x00, 0x0C, 0x00, 0x0D, 0x00, 0x00, 0x00]))
        self.assertEqual(image[8:], SONG_DATA)

    def test_base_address(self):
        image = build_song_image(compile_mml(SONG), 0x8000)
        self.assertEqual(image[:8], bytes([0x08, 0x80, 0x0C, 0x80, 0x0D, 0x80, 0x00, 0x00]))
        self.assertEqual(image[8:], SONG_DATA)

    def test_layout(self):
        layout = song_layout(compile_mml(SONG), 0xFFF0)
        self.assertEqual([(c.name, c.offset, c.addr, c.size) for c in layout],
                         [("D", 8, 0xFFF8, 4), ("E", 12, 0xFFFC, 1), ("F", 13, 0xFFFD, 2)])
        self.assertIn("Channel E: offset     12, address $fffc", layout_string(layout))

    def test_address_overflow(self):
        with self.assertRaises(RuntimeError):
            song_layout(compile_mml(SONG), 0xFFF8)
        with self.assertRaises(RuntimeError):
            song_layout(compile_mml(SONG), 0x10000)

    def test_channel_count(self):
        with self.assertRaises(RuntimeError):
            build_song_image(MmlData([ChannelData("D", b"\xff", 1)]))


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def write_mml(self, text):
        path = os.path.join(self.tmp_dir, "song.mml")
        with open(path, "w", encoding="utf-8") as fp:
            fp.write(text)
        return path

    def run_main(self, argv):
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            r = main(argv)
        return r, stdout.getvalue(), stderr.getvalue()

    def test_parse_address(self):
        self.assertEqual(parse_address("0x8000"), 0x8000)
        self.assertEqual(parse_address("256"), 256)
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parse_arguments(["-b", "0x10000", "in.mml", "out.bin"])
            with self.assertRaises(SystemExit):
                parse_arguments(["-b", "abc", "in.mml", "out.bin"])

    def test_compile(self):
        mml_file = self.write_mml(SONG)
        out_file = os.path.join(self.tmp_dir, "song.bin")

        r, stdout, stderr = self.run_main([mml_file, out_file])
        self.assertEqual(r, 0)
        self.assertEqual(stderr, "")

        with open(out_file, "rb") as fp:
            self.assertEqual(fp.read(), build_song_image(compile_mml(SONG)))

    def test_verbose_and_listing(self):
        mml_file = self.write_mml(SONG)
        out_file = os.path.join(self.tmp_dir, "song.bin")

        r, stdout, stderr = self.run_main(["-v", "-l", "-b", "0x4000", mml_file, out_file])
        self.assertEqual(r, 0)
        self.assertIn("Total: 15 bytes", stderr)
        self.assertIn("Channel D:", stdout)
        self.assertIn("$4008: 01", stdout)

    def test_compile_errors(self):
        mml_file = self.write_mml("D CDE\nE O9\nF [C\n")
        out_file = os.path.join(self.tmp_dir, "song.bin")

        r, stdout, stderr = self.run_main([mml_file, out_file])
        self.assertEqual(r, 1)
        self.assertIn("Error (octave range): 2:4:", stderr)
        self.assertIn("Error (unclosed nest): 3:", stderr)
        self.assertIn("    E O9\n       ^\n", stderr)
        self.assertIn("Not writing output due to compile errors", stderr)
        self.assertFalse(os.path.exists(out_file))

    def test_missing_input(self):
        r, stdout, stderr = self.run_main([os.path.join(self.tmp_dir, "missing.mml"), os.path.join(self.tmp_dir, "out.bin")])
        self.assertEqual(r, 1)
        self.assertIn("Cannot open MML file", stderr)


class TestPrintError(unittest.TestCase):

    def print_error(self, heading, detail=None):
        fp = io.StringIO()
        print_error(heading, detail, fp)
        return fp.getvalue()

    def test_heading_only(self):
        self.assertEqual(self.print_error("Not writing output"), "Not writing output\n")

    def test_string_and_exception(self):
        self.assertEqual(self.print_error("Error (syntax)", "1:3: Unknown command: Z"), "Error (syntax): 1:3: Unknown command: Z\n")
        self.assertEqual(self.print_error("Cannot build song", RuntimeError("address out of range")),
                         "Cannot build song: address out of range\n")

    def test_file_error(self):
        self.assertEqual(self.print_error("Cannot open MML file", FileError("song.mml", "No such file or directory")),
                         "Cannot open MML file: song.mml: No such file or directory\n")

    def test_compile_error(self):
        e = CompileError([MmlError(ErrorKind.SYNTAX, "Unknown command: Z", 2, 4), MmlError(ErrorKind.UNCLOSED_NEST, "Missing loop end `]`", 3, None)])
        self.assertEqual(self.print_error("Error", e),
                         "Error: 2 error(s) compiling MML:\n    2:4: Unknown command: Z\n    3: Missing loop end `]`\n")

    def test_source_line_caret(self):
        fp = io.StringIO()
        print_source_line("D\tC Z", 5, fp)
        self.assertEqual(fp.getvalue(), "    D\tC Z\n     \t  ^\n")


if __name__ == '__main__':
    unittest.main(verbosity=2)
