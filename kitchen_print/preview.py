"""Render slip documents to images, for checking layouts without a printer."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Sequence

from kitchen_print.protocol import (
    CENTER,
    LEFT,
    PRINT_WIDTH,
    RIGHT,
    Align,
    Bold,
    Cut,
    Directive,
    DrawerPulse,
    Feed,
    LeftRight,
    Line,
    Rule,
    draw_line,
    left_right,
)

logger = logging.getLogger(__name__)

# 80mm roll at 203 dpi.
PREVIEW_WIDTH_PX = 576
PREVIEW_FONT_SIZE = 20
PREVIEW_LINE_PX = 26
PREVIEW_MARGIN_PX = 8
PREVIEW_CUT_GAP_PX = 24

_FONT_OVERRIDE_ENV = "KITCHEN_PRINT_PREVIEW_FONT"
_MONO_FONT_FALLBACKS = (
    "/usr/share/fonts/TTF/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/liberation/LiberationMono-Regular.ttf",
    "/System/Library/Fonts/Menlo.ttc",
    "C:/Windows/Fonts/consola.ttf",
)


def resolve_preview_font_path() -> str:
    """
    Resolve a monospace font for previews.

    Resolution order:
    1. KITCHEN_PRINT_PREVIEW_FONT (if set)
    2. Known Linux, macOS and Windows monospace fonts
    """
    candidates: list[str] = []
    env_override = os.environ.get(_FONT_OVERRIDE_ENV, "").strip()
    if env_override:
        candidates.append(env_override)
    candidates.extend(_MONO_FONT_FALLBACKS)
    for candidate in candidates:
        if Path(candidate).is_file():
            return candidate
    raise RuntimeError(
        f"No usable preview font found. Set {_FONT_OVERRIDE_ENV} to a monospace .ttf file. "
        f"Tried: {', '.join(candidates)}"
    )


def _load_font() -> object:
    from PIL import ImageFont

    try:
        return ImageFont.truetype(resolve_preview_font_path(), PREVIEW_FONT_SIZE)
    except RuntimeError as exc:
        logger.warning("preview_font_fallback reason=%s", exc)
        return ImageFont.load_default()


def preview_rows(document: Iterable[Directive]) -> list[tuple[str, str, bool]]:
    """Flatten a document into (text, alignment, bold) rows; a cut is a row of '~'."""
    rows: list[tuple[str, str, bool]] = []
    align = LEFT
    bold = False
    for directive in document:
        if isinstance(directive, Align):
            align = directive.alignment
        elif isinstance(directive, Bold):
            bold = directive.on
        elif isinstance(directive, Line):
            rows.append((directive.text, align, bold))
        elif isinstance(directive, LeftRight):
            rows.append((left_right(directive.left, directive.right, directive.width), align, bold))
        elif isinstance(directive, Rule):
            rows.append((draw_line(directive.char, directive.width), align, bold))
        elif isinstance(directive, Feed):
            rows.extend([("", align, bold)] * max(0, directive.lines))
        elif isinstance(directive, Cut):
            rows.append(("~" * PRINT_WIDTH, LEFT, False))
        elif isinstance(directive, DrawerPulse):
            rows.append(("[drawer]", CENTER, False))
    return rows


def render_preview(documents: Sequence[Sequence[Directive]]) -> object:
    """Render one or more slips onto a single white strip image."""
    from PIL import Image, ImageDraw

    font = _load_font()
    all_rows = [preview_rows(document) for document in documents]
    height = sum(len(rows) * PREVIEW_LINE_PX + PREVIEW_CUT_GAP_PX for rows in all_rows) + PREVIEW_MARGIN_PX
    img = Image.new("1", (PREVIEW_WIDTH_PX, max(1, height)), color=1)
    draw = ImageDraw.Draw(img)
    usable = PREVIEW_WIDTH_PX - PREVIEW_MARGIN_PX * 2

    y = PREVIEW_MARGIN_PX
    for rows in all_rows:
        for text, align, bold in rows:
            if text:
                width = draw.textlength(text, font=font)
                if align == CENTER:
                    x = PREVIEW_MARGIN_PX + max(0, (usable - width) // 2)
                elif align == RIGHT:
                    x = PREVIEW_MARGIN_PX + max(0, usable - width)
                else:
                    x = PREVIEW_MARGIN_PX
                draw.text((x, y), text, font=font, fill=0)
                if bold:
                    # Overstrike one pixel right for emphasis.
                    draw.text((x + 1, y), text, font=font, fill=0)
            y += PREVIEW_LINE_PX
        y += PREVIEW_CUT_GAP_PX
    return img


def save_preview(documents: Sequence[Sequence[Directive]], path: str) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    render_preview(documents).save(target)
    return target
