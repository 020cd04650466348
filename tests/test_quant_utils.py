"""Tests for the quantization vocabulary and filename token rules."""

import pytest

from modelscout.quant_utils import (
    DEFAULT_MIN_LEVEL,
    canonical_min_quant,
    extract_quant_label,
    is_quant_label,
    min_quant_level,
    quant_level,
)


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("model-Q4_K_M.gguf", "Q4_K_M"),
        ("model.q5_k_s.gguf", "Q5_K_S"),
        ("model.Q8_0.gguf", "Q8_0"),
        ("model.F16.bin", "F16"),
        ("model-bf16.gguf", "BF16"),
        ("model-IQ4_XS.gguf", "IQ4_XS"),
        ("model-IQ3_XXS.gguf", "IQ3_XXS"),
        ("llama-Q6_K-00001-of-00002.gguf", "Q6_K"),
    ],
)
def test_extract_quant_label_recognises_vocabulary(filename, expected):
    assert extract_quant_label(filename) == expected


@pytest.mark.parametrize(
    "filename",
    [
        "README.md",
        "model.gguf",
        "modelQ4_K_M.gguf",  # no separator before the token
        "model-Q7_K.gguf",  # well-formed token outside the vocabulary
        "",
    ],
)
def test_extract_quant_label_returns_none(filename):
    assert extract_quant_label(filename) is None


def test_first_token_wins():
    assert extract_quant_label("mix-Q4_K_M-from-Q8_0.gguf") == "Q4_K_M"


def test_quant_level_ordering():
    assert quant_level("Q2_K") < quant_level("Q4_K_M") < quant_level("Q8_0")
    assert quant_level("F16") < quant_level("F32")
    assert quant_level("q4_k_m") == quant_level("Q4_K_M")
    assert quant_level("NOPE") == 0


def test_min_quant_level_aliases_and_fallback():
    assert min_quant_level("Q4") == 3
    assert min_quant_level("q6") == 5
    assert min_quant_level("F32") == 8
    assert min_quant_level("Q5_K_M") == 4
    assert min_quant_level(None) == DEFAULT_MIN_LEVEL
    assert min_quant_level("bogus") == DEFAULT_MIN_LEVEL


def test_canonical_min_quant_names_the_tier():
    assert canonical_min_quant("Q4_K_M") == "Q4"
    assert canonical_min_quant(" q5_k_s ") == "Q5"
    assert canonical_min_quant("FP16") == "F16"
    assert canonical_min_quant(None) == "Q4"
    assert canonical_min_quant("bogus") == "Q4"


def test_is_quant_label():
    assert is_quant_label("IQ4_NL")
    assert is_quant_label("fp16")
    assert not is_quant_label("Q7_K")
    assert not is_quant_label("")
