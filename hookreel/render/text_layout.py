"""Hook text layout for the reaction overlay.

Wraps the hook into at most four lines sized for the configured share of the
frame width and computes the drawtext anchor. Pure functions, no I/O.
"""

import math
from dataclasses import dataclass

from hookreel.schemas.render import TextSettings

# Average glyph width as a fraction of font size for DejaVu Sans Bold.
# Calibrated against rendered output, not derived from font metrics.
GLYPH_WIDTH_FACTOR = 0.55

MAX_LINES = 4

# A long word is not split into a leftover gap shorter than this; it starts on
# a fresh line instead.
MIN_SPLIT_FRAGMENT = 3

LINE_SPACING_FACTOR = 0.2

TOP_ANCHOR_RATIO = 0.15
BOTTOM_ANCHOR_RATIO = 0.75


@dataclass(frozen=True)
class TextLayout:
    """Wrapped hook text and its drawtext anchor."""

    lines: tuple[str, ...]
    x: str
    y: str
    font_size: int
    chars_per_line: int
    line_spacing: int
    truncated: bool = False

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def estimated_width(self) -> float:
        """Estimated pixel width of the widest line."""
        longest = max((len(line) for line in self.lines), default=0)
        return longest * self.font_size * GLYPH_WIDTH_FACTOR

    @property
    def estimated_height(self) -> int:
        if not self.lines:
            return 0
        return len(self.lines) * self.font_size + (len(self.lines) - 1) * self.line_spacing


def chars_per_line(max_width_percent: float, font_size: int, frame_width: int) -> int:
    """Character budget for one line of hook text."""
    usable_width = frame_width * max_width_percent / 100
    return max(1, math.floor(usable_width / (font_size * GLYPH_WIDTH_FACTOR)))


def wrap_words(text: str, budget: int, max_lines: int = MAX_LINES) -> tuple[list[str], bool]:
    """Greedy word wrap within ``budget`` characters per line.

    Returns the wrapped lines and whether trailing text was dropped to respect
    ``max_lines``.
    """
    lines = [""]

    for word in text.split():
        if len(word) > budget:
            remaining = word
            while remaining:
                current = lines[-1]
                space = budget - len(current) - (1 if current else 0)
                if space > 0 and (not current or space > MIN_SPLIT_FRAGMENT):
                    piece, remaining = remaining[:space], remaining[space:]
                    lines[-1] = f"{current} {piece}" if current else piece
                    if not remaining:
                        break
                if len(lines) >= max_lines:
                    return _non_empty(lines), True
                lines.append("")
            continue

        current = lines[-1]
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= budget:
            lines[-1] = candidate
        elif len(lines) < max_lines:
            lines.append(word)
        else:
            return _non_empty(lines), True

    return _non_empty(lines), False


def _non_empty(lines: list[str]) -> list[str]:
    return [line for line in lines if line]


def x_anchor(align: str, max_width_percent: float, frame_width: int) -> str:
    """drawtext x expression. ``w``/``text_w`` are evaluated by FFmpeg."""
    margin = round(frame_width * (100 - max_width_percent) / 200)
    if align == "left":
        return str(margin)
    if align == "right":
        return f"w-text_w-{margin}"
    return "(w-text_w)/2"


def y_anchor(position: str, frame_height: int) -> str:
    """drawtext y expression. ``h``/``text_h`` are evaluated by FFmpeg."""
    if position == "top":
        return str(round(frame_height * TOP_ANCHOR_RATIO))
    if position == "bottom":
        return str(round(frame_height * BOTTOM_ANCHOR_RATIO))
    return "(h-text_h)/2"


def layout_hook_text(
    text: str,
    settings: TextSettings,
    frame_width: int,
    frame_height: int,
) -> TextLayout:
    """Wrap ``text`` and position it on a ``frame_width`` x ``frame_height`` frame."""
    budget = chars_per_line(settings.max_width_percent, settings.font_size, frame_width)
    lines, truncated = wrap_words(text, budget)
    return TextLayout(
        lines=tuple(lines),
        x=x_anchor(settings.align, settings.max_width_percent, frame_width),
        y=y_anchor(settings.position, frame_height),
        font_size=settings.font_size,
        chars_per_line=budget,
        line_spacing=round(settings.font_size * LINE_SPACING_FACTOR),
        truncated=truncated,
    )


def _backslash_escape(value: str, specials: str) -> str:
    return "".join(f"\\{char}" if char in specials else char for char in value)


def escape_filter_value(value: str) -> str:
    """Escape a value embedded in a -filter_complex graph.

    Applies the filter option level first, then the filtergraph level.
    """
    return _backslash_escape(_backslash_escape(value, "\\':"), "\\'[],;")


def build_drawtext_filter(
    layout: TextLayout,
    textfile_path: str,
    font_path: str,
    font_color: str = "white",
    border_color: str = "black",
    border_width: int = 2,
) -> str:
    """Build the drawtext filter for a laid-out hook.

    The text is read from ``textfile_path`` with expansion disabled, so
    ``%``, quotes, colons and backslashes in the hook are drawn literally.
    """
    params = [
        f"drawtext=textfile={escape_filter_value(textfile_path)}",
        "expansion=none",
        f"fontfile={escape_filter_value(font_path)}",
        f"fontsize={layout.font_size}",
        f"fontcolor={font_color}",
        f"borderw={border_width}",
        f"bordercolor={border_color}",
        f"line_spacing={layout.line_spacing}",
        f"x={layout.x}",
        f"y={layout.y}",
    ]
    return ":".join(params)
