"""Tests for the entropy detector module."""
from __future__ import annotations

from Kryptos.detectors.entropy_detector import (
    char_classes,
    charset_size,
    looks_like_secret,
    score,
    shannon_entropy,
)


def test_shannon_entropy_empty_string() -> None:
    """Test entropy of empty string is 0."""
    assert shannon_entropy("") == 0.0


def test_shannon_entropy_single_char() -> None:
    """Test entropy of single repeated character is 0."""
    assert shannon_entropy("aaaaaaaaaaaaaaaaaaaaaaaa") == 0.0


def test_shannon_entropy_low_vs_high() -> None:
    low = "aaaaaaaaaaaaaaaaaaaaaaaa"
    high = "q8Zr3LmX0vT7pKc2WnY5bH1dJ"
    assert shannon_entropy(low) < shannon_entropy(high)


def test_score_bounds() -> None:
    for candidate in ["", "a", "aaaa", "password", "q8Zr3LmX0vT7pKc2WnY5bH1dJ", "!!@@##$$%%^^&&**"]:
        assert 0.0 <= score(candidate) <= 1.0


def test_score_empty_is_zero() -> None:
    assert score("") == 0.0


def test_score_lowercase_below_mixed() -> None:
    """Pure lowercase text scores lower than a mixed-class token of the same length."""
    words = "correcthorsebatterystap"
    token = "q8Zr3LmX0vT7pKc2WnY5bH1"
    assert len(words) == len(token)
    assert score(words) < score(token)


def test_scenario_long_lowercase_string_is_not_a_secret() -> None:
    """A 40 character lowercase dictionary string stays below the threshold."""
    text = "thequickbrownfoxjumpsoverthelazydogagain"
    assert len(text) == 40
    assert score(text) < 0.7
    assert not looks_like_secret(text)


def test_charset_size_hex() -> None:
    digest = "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"
    assert charset_size(digest) == 16


def test_charset_size_mixed() -> None:
    assert charset_size("aZ9") == 62
    assert charset_size("aZ9/") == 94


def test_char_classes() -> None:
    assert char_classes("abc") == 1
    assert char_classes("abcDEF") == 2
    assert char_classes("abcDEF123") == 3
    assert char_classes("abcDEF123+/") == 4


def test_looks_like_secret_true_positive() -> None:
    """Test that random-looking strings are detected as secrets."""
    assert looks_like_secret("q8Zr3LmX0vT7pKc2WnY5bH1dJ")


def test_looks_like_secret_short_string() -> None:
    """Test that short strings are not detected as secrets."""
    assert not looks_like_secret("abc123")


def test_looks_like_secret_low_diversity() -> None:
    """Test that strings with low character diversity are not secrets."""
    assert not looks_like_secret("abababababababababababab")


def test_looks_like_secret_threshold() -> None:
    """Test custom threshold parameter."""
    token = "q8Zr3LmX0vT7pKc2WnY5bH1dJ"
    assert looks_like_secret(token, threshold=0.5)
    assert not looks_like_secret(token, threshold=1.01)


def test_looks_like_secret_min_length() -> None:
    token = "q8Zr3LmX0vT7pKc2WnY5bH1dJ"
    assert not looks_like_secret(token, min_length=len(token) + 1)
