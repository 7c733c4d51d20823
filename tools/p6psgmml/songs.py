# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

from typing import Final, NamedTuple

from .driver_constants import (
    Addr,
    N_PSG_CHANNELS,
    CHANNEL_ADDR_OFFSETS,
    SONG_HEADER_SIZE,
    MAX_ADDR,
)
from .mml_compiler import MmlData


class ChannelLayout(NamedTuple):
    name: str
    # Offset of the channel data within the song image
    offset: int
    # Address of the channel data when the image is loaded at `base_address`
    addr: Addr
    size: int


def song_layout(mml_data: MmlData, base_address: Addr) -> list[ChannelLayout]:
    if len(mml_data.channels) != N_PSG_CHANNELS:
        raise RuntimeError(f"Expected {N_PSG_CHANNELS} channels")

    if base_address < 0 or base_address > MAX_ADDR:
        raise RuntimeError(f"Base address out of range (0-${MAX_ADDR:04x})")

    out = list()

    data_offset = SONG_HEADER_SIZE

    for channel in mml_data.channels:
        addr = base_address + data_offset
        if addr > MAX_ADDR:
            raise RuntimeError(f"Channel {channel.name} address out of range (${addr:x})")

        out.append(ChannelLayout(name=channel.name, offset=data_offset, addr=addr, size=len(channel.bytecode)))

        data_offset += len(channel.bytecode)

    return out


def song_header(layout: list[ChannelLayout]) -> bytes:
    out = bytearray(SONG_HEADER_SIZE)

    for header_offset, c in zip(CHANNEL_ADDR_OFFSETS, layout):
        # starting address
        out[header_offset] = c.addr & 0xFF
        out[header_offset + 1] = c.addr >> 8

    return bytes(out)


def build_song_image(mml_data: MmlData, base_address: Addr = 0) -> bytes:
    """
    Build the song image.

    The image starts with a header of channel addresses, followed by the bytecode of each channel.
    """

    layout: Final = song_layout(mml_data, base_address)

    out = bytearray()
    out += song_header(layout)

    for c, channel in zip(layout, mml_data.channels):
        assert len(out) == c.offset
        out += channel.bytecode

    return bytes(out)


def layout_string(layout: list[ChannelLayout]) -> str:
    return "\n".join(f"Channel {c.name}: offset {c.offset: 6}, address ${c.addr:04x}, {c.size: 6} bytes" for c in layout)
