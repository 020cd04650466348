"""Shared quantization vocabulary and token utilities.

Centralises the fixed, quality-ordered label vocabulary and the filename token
rules so that future additions (new IQ variants, fp8, ...) only require
editing here.
"""

from __future__ import annotations

import re
from typing import Optional

# Tier 1 (~2-bit, smallest) through tier 8 (32-bit float, largest).
QUANT_ORDER: dict[str, int] = {
    "Q2_K": 1,
    "Q2_K_S": 1,
    "IQ3_XXS": 2,
    "IQ3_XS": 2,
    "IQ3_S": 2,
    "IQ3_M": 2,
    "Q3_K_S": 2,
    "Q3_K_M": 2,
    "Q3_K_L": 2,
    "IQ4_XS": 3,
    "IQ4_NL": 3,
    "Q4_0": 3,
    "Q4_1": 3,
    "Q4_K_S": 3,
    "Q4_K_M": 3,
    "Q5_0": 4,
    "Q5_1": 4,
    "Q5_K_S": 4,
    "Q5_K_M": 4,
    "Q6_K": 5,
    "Q8_0": 6,
    "BF16": 7,
    "F16": 7,
    "FP16": 7,
    "F32": 8,
    "FP32": 8,
}

MAX_QUANT_LEVEL = 8

# Short names accepted for the minimum-quality floor of a search.
QUANT_LEVEL_ALIASES: dict[str, int] = {
    "Q2": 1,
    "Q3": 2,
    "Q4": 3,
    "Q5": 4,
    "Q6": 5,
    "Q8": 6,
    "F16": 7,
    "F32": 8,
}

_ALIAS_BY_LEVEL: dict[int, str] = {level: alias for alias, level in QUANT_LEVEL_ALIASES.items()}

DEFAULT_MIN_LEVEL = 3

# Token rules, tried in order at each separator position. Each entry is
# (rule name, pattern fragment). The combined pattern requires a separator
# (-, _ or .) before the token and a separator or end of string after it.
QUANT_TOKEN_RULES: tuple[tuple[str, str], ...] = (
    ("k-quant", r"I?Q\d+_K(?:_[SML])?"),
    ("iq-variant", r"IQ\d+_(?:XXS|XS|NL|S|M)"),
    ("legacy", r"I?Q\d+_\d"),
    ("bare", r"I?Q\d+"),
    ("float", r"B?FP?(?:16|32)"),
)

_QUANT_TOKEN_PATTERN = re.compile(
    r"[-_.](?P<q>"
    + "|".join(f"(?:{fragment})" for _, fragment in QUANT_TOKEN_RULES)
    + r")(?=[-_.]|$)",
    re.IGNORECASE,
)


def quant_level(label: str) -> int:
    """Return the tier (1-8) of a vocabulary label, or 0 when unknown."""
    return QUANT_ORDER.get(label.upper(), 0) if label else 0


def min_quant_level(min_quant: Optional[str]) -> int:
    """Translate a quality floor (alias like ``Q4`` or a full label) to a tier."""
    if not min_quant:
        return DEFAULT_MIN_LEVEL
    key = min_quant.strip().upper()
    return QUANT_LEVEL_ALIASES.get(key) or QUANT_ORDER.get(key) or DEFAULT_MIN_LEVEL


def canonical_min_quant(min_quant: Optional[str]) -> str:
    """The alias naming the tier of ``min_quant``; equivalent floors compare equal."""
    return _ALIAS_BY_LEVEL[min_quant_level(min_quant)]


def is_quant_label(label: str) -> bool:
    """Return True if the label belongs to the fixed vocabulary."""
    return bool(label) and label.upper() in QUANT_ORDER


def extract_quant_label(filename: str) -> Optional[str]:
    """Return the upper-cased vocabulary label embedded in ``filename``.

    The first separator-delimited quant token wins. Tokens outside the
    vocabulary (``Q7_K``, ``BFP16`` ...) yield ``None`` rather than an error.
    """
    if not filename:
        return None
    match = _QUANT_TOKEN_PATTERN.search(filename)
    if not match:
        return None
    label = match.group("q").upper()
    return label if label in QUANT_ORDER else None


__all__ = [
    "QUANT_ORDER",
    "QUANT_LEVEL_ALIASES",
    "QUANT_TOKEN_RULES",
    "MAX_QUANT_LEVEL",
    "quant_level",
    "min_quant_level",
    "canonical_min_quant",
    "is_quant_label",
    "extract_quant_label",
]
