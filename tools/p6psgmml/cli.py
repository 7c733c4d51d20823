# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

import sys
import argparse
from typing import Final, Optional, Sequence, TextIO

from .driver_constants import MAX_ADDR
from .mml_compiler import CompilerConfig, CompileError, MmlData, DEFAULT_CONFIG, compile_mml, source_lines
from .songs import build_song_image, song_layout, layout_string
from .disassembler import listing
from .errors import FileError, print_error, print_source_line


def parse_address(s: str) -> int:
    try:
        addr = int(s, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid address: {s}")

    if addr < 0 or addr > MAX_ADDR:
        raise argparse.ArgumentTypeError(f"address out of range (0-0x{MAX_ADDR:04x}): {s}")
    return addr


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=DEFAULT_CONFIG.program_name, description="Compile PSG MML into driver bytecode")
    parser.add_argument("-b", "--base-address", type=parse_address, default=0, help="base address of the compiled data")
    parser.add_argument("-v", "--verbose", action="store_true", help="print channel sizes and addresses")
    parser.add_argument("-l", "--listing", action="store_true", help="print a disassembly of each channel")
    parser.add_argument("mml_file", action="store", help="MML input file")
    parser.add_argument("output", action="store", help="binary output file")

    return parser.parse_args(argv)


def print_compile_errors(e: CompileError, lines: list[str], fp: Optional[TextIO] = None) -> None:
    for err in e.errors:
        print_error(f"Error ({err.kind.value})", err.str(), fp)
        if 0 < err.line_number <= len(lines):
            print_source_line(lines[err.line_number - 1], err.column, fp)


def print_channel_listing(mml_data: MmlData, base_address: int) -> None:
    for c, layout in zip(mml_data.channels, song_layout(mml_data, base_address)):
        print(f"Channel {c.name}:")
        print(listing(c.bytecode, layout.addr))
        print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args: Final = parse_arguments(argv)

    config: Final = CompilerConfig(base_address=args.base_address)

    try:
        with open(args.mml_file, "r", encoding="utf-8") as fp:
            mml_text = fp.read()
    except OSError as e:
        print_error("Cannot open MML file", FileError(args.mml_file, e.strerror or str(e)))
        return 1

    try:
        mml_data = compile_mml(mml_text, config)
    except CompileError as e:
        print_compile_errors(e, source_lines(mml_text))
        print_error("Not writing output due to compile errors")
        return 1

    try:
        image = build_song_image(mml_data, config.base_address)
    except RuntimeError as e:
        print_error("Cannot build song", e)
        return 1

    if args.verbose:
        print(layout_string(song_layout(mml_data, config.base_address)), file=sys.stderr)
        print(f"Total: {len(image)} bytes", file=sys.stderr)

    if args.listing:
        print_channel_listing(mml_data, config.base_address)

    try:
        with open(args.output, "wb") as fp:
            fp.write(image)
    except OSError as e:
        print_error("Cannot write output file", FileError(args.output, e.strerror or str(e)))
        return 1

    return 0
