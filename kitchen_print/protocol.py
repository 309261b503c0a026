"""ESC/POS directives and the byte encoder for kitchen slips."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

PRINT_WIDTH = 48

ESC = 0x1B
GS = 0x1D
LF = 0x0A

LEFT = "left"
CENTER = "center"
RIGHT = "right"

NORMAL = "normal"
DOUBLE_HEIGHT = "double_height"
DOUBLE = "double"

CMD_INIT = bytes([ESC, 0x40])
CMD_ALIGN = {
    LEFT: bytes([ESC, 0x61, 0x00]),
    CENTER: bytes([ESC, 0x61, 0x01]),
    RIGHT: bytes([ESC, 0x61, 0x02]),
}
CMD_BOLD_ON = bytes([ESC, 0x45, 0x01])
CMD_BOLD_OFF = bytes([ESC, 0x45, 0x00])
CMD_TEXT_SIZE = {
    NORMAL: bytes([GS, 0x21, 0x00]),
    DOUBLE_HEIGHT: bytes([GS, 0x21, 0x01]),
    DOUBLE: bytes([GS, 0x21, 0x11]),
}
CMD_LINE_FEED = bytes([LF])
CMD_CUT_PARTIAL = bytes([GS, 0x56, 0x41, 0x00])
# Pulse drawer pin 2: 25 * 2ms on, 250 * 2ms off.
CMD_DRAWER_PULSE = bytes([ESC, 0x70, 0x00, 0x19, 0xFA])


@dataclass(frozen=True)
class Init:
    pass


@dataclass(frozen=True)
class Align:
    alignment: str = LEFT


@dataclass(frozen=True)
class Bold:
    on: bool = True


@dataclass(frozen=True)
class TextSize:
    size: str = NORMAL


@dataclass(frozen=True)
class Line:
    text: str = ""


@dataclass(frozen=True)
class LeftRight:
    left: str
    right: str
    width: int = PRINT_WIDTH


@dataclass(frozen=True)
class Rule:
    char: str = "-"
    width: int = PRINT_WIDTH


@dataclass(frozen=True)
class Feed:
    lines: int = 1


@dataclass(frozen=True)
class Cut:
    pass


@dataclass(frozen=True)
class DrawerPulse:
    pass


Directive = Union[Init, Align, Bold, TextSize, Line, LeftRight, Rule, Feed, Cut, DrawerPulse]
Document = tuple[Directive, ...]


def col(text: object, width: int, align: str = LEFT) -> str:
    """Truncate `text` to `width` and pad it with spaces to exactly `width`."""
    value = "" if text is None else str(text)
    value = value[: max(0, width)]
    remainder = max(0, width - len(value))
    if align == RIGHT:
        return " " * remainder + value
    if align == CENTER:
        pad = remainder // 2
        return " " * pad + value + " " * (remainder - pad)
    return value + " " * remainder


def left_right(left: object, right: object, width: int = PRINT_WIDTH) -> str:
    """Lay out two strings on one line, right text flush against `width`."""
    lhs = str(left)
    rhs = str(right)
    spaces = max(1, width - len(lhs) - len(rhs))
    return lhs + " " * spaces + rhs


def draw_line(char: str = "-", width: int = PRINT_WIDTH) -> str:
    return (char or "-")[0] * max(0, width)


def encode_text(text: str) -> bytes:
    """Transcode text one byte per character; code points above 0xFF are masked."""
    return bytes(ord(ch) & 0xFF for ch in text)


def _encode_one(directive: Directive) -> bytes:
    if isinstance(directive, Line):
        return encode_text(directive.text) + CMD_LINE_FEED
    if isinstance(directive, LeftRight):
        return encode_text(left_right(directive.left, directive.right, directive.width)) + CMD_LINE_FEED
    if isinstance(directive, Rule):
        return encode_text(draw_line(directive.char, directive.width)) + CMD_LINE_FEED
    if isinstance(directive, Feed):
        return CMD_LINE_FEED * max(0, directive.lines)
    if isinstance(directive, Align):
        return CMD_ALIGN.get(directive.alignment, CMD_ALIGN[LEFT])
    if isinstance(directive, Bold):
        return CMD_BOLD_ON if directive.on else CMD_BOLD_OFF
    if isinstance(directive, TextSize):
        return CMD_TEXT_SIZE.get(directive.size, CMD_TEXT_SIZE[NORMAL])
    if isinstance(directive, Init):
        return CMD_INIT
    if isinstance(directive, Cut):
        return CMD_CUT_PARTIAL
    if isinstance(directive, DrawerPulse):
        return CMD_DRAWER_PULSE
    raise TypeError(f"unknown directive {directive!r}")


def encode(document: Iterable[Directive]) -> bytes:
    """Serialize a document to the ESC/POS byte stream."""
    return b"".join(_encode_one(directive) for directive in document)
