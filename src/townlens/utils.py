"""Small parsing helpers shared by the clients and renderers."""

import math
import unicodedata
from typing import Any
from xml.sax.saxutils import escape

# e-Stat placeholders for suppressed or missing cells
_MISSING_MARKERS = {"", "-", "…", "...", "x", "X", "***", "－"}

_KATAKANA_START = 0x30A1
_KATAKANA_END = 0x30F6
_KANA_OFFSET = 0x60


def arrify(value: Any) -> list:
    """e-Stat returns a bare object where a one-element list is expected."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def text_from(value: Any) -> str:
    """Extract text from an e-Stat node, which is either a string or {"$": ...}."""
    if value is None:
        return ""
    if isinstance(value, dict):
        inner = value.get("$")
        return "" if inner is None else str(inner)
    return str(value)


def parse_number(value: Any) -> float | None:
    """Parse an e-Stat cell. Placeholders and garbage become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    text = text_from(value).strip()
    if text in _MISSING_MARKERS:
        return None
    try:
        number = float(text.replace(",", ""))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_cd_param_name(class_id: str) -> str:
    """'cat01' -> 'cdCat01', 'area' -> 'cdArea'."""
    return "cd" + class_id[:1].upper() + class_id[1:]


def katakana_to_hiragana(text: str) -> str:
    return "".join(
        chr(ord(ch) - _KANA_OFFSET) if _KATAKANA_START <= ord(ch) <= _KATAKANA_END else ch
        for ch in text
    )


def normalize_label(text: str) -> str:
    """NFKC-normalize and strip all whitespace (including full-width spaces)."""
    normalized = unicodedata.normalize("NFKC", text)
    return "".join(normalized.split())


def escape_xml(text: str) -> str:
    return escape(text, {'"': "&quot;", "'": "&#39;"})


def usage_percentage(used: float, limit: float | None) -> float:
    """Share of ``limit`` consumed, clamped to [0, 100]. No limit means 0.

    Every percentage in scoring (candidate percentiles, missing rates) goes
    through this clamp.
    """
    if limit is None or limit <= 0:
        return 0.0
    return max(0.0, min(used / limit * 100, 100.0))
