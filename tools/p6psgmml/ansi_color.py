# -*- coding: utf-8 -*-
# vim: set fenc=utf-8 ai ts=4 sw=4 sts=4 et:

import os
from typing import final, Final, TextIO, Type, Union


@final
class NoAnsiColors:
    RESET           : Final = ''

    BOLD            : Final = ''
    NORMAL          : Final = ''

    BRIGHT_RED      : Final = ''
    BRIGHT_GREEN    : Final = ''
    BRIGHT_YELLOW   : Final = ''
    BRIGHT_WHITE    : Final = ''



@final
class ForceAnsiColors:
    RESET           : Final = '\033[0m'

    BOLD            : Final = '\033[1m'
    NORMAL          : Final = '\033[22m'

    BRIGHT_RED      : Final = '\033[91m'
    BRIGHT_GREEN    : Final = '\033[92m'
    BRIGHT_YELLOW   : Final = '\033[93m'
    BRIGHT_WHITE    : Final = '\033[97m'



AnsiColorsType = Union[Type[NoAnsiColors], Type[ForceAnsiColors]]


def ansi_colors_for(fp: TextIO) -> AnsiColorsType:
    "Colours are only used on a terminal and only if `NO_COLOR` is unset"

    if os.getenv('NO_COLOR', '') == '' and fp.isatty():
        return ForceAnsiColors
    return NoAnsiColors
