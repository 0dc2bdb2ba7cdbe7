from __future__ import annotations

import math
import string
from collections import Counter

_LOWER = frozenset(string.ascii_lowercase)
_UPPER = frozenset(string.ascii_uppercase)
_DIGITS = frozenset(string.digits)
_HEX = frozenset(string.hexdigits)

# Printable ASCII punctuation
_SYMBOL_ALPHABET = 32

# Weight applied to the normalized entropy by number of character classes.
# Pure lowercase text is far more often prose or identifiers than keys.
DIVERSITY_WEIGHTS = {0: 0.0, 1: 0.6, 2: 0.8, 3: 0.95, 4: 1.0}


def shannon_entropy(s: str) -> float:
    """
    Compute Shannon entropy (base-2) for a string.

    Notes:
        - Returns 0.0 for empty strings.
        - Uses O(n) counting via collections.Counter
        - Entropy is higher when character distribution is uniformly distributed

    Examples:
        >>> round(shannon_entropy("aaaaaaa"), 3)
        0.0
        >>> round(shannon_entropy("Aa1Aa1Aa1"), 3) >= 1.5
        True

    Args:
        s (str): The input string.

    Returns:
        float: The Shannon entropy of the input string in bits per character.
    """
    if not s:
        return 0.0

    counts = Counter(s)
    n = len(s)
    ent = 0.0
    for c in counts.values():
        p = c / n
        ent -= p * math.log2(p)
    return ent


def char_classes(s: str) -> int:
    """Number of classes present among lowercase, uppercase, digits, symbols."""
    has_lower = any(c in _LOWER for c in s)
    has_upper = any(c in _UPPER for c in s)
    has_digit = any(c in _DIGITS for c in s)
    has_symbol = any(not (c in _LOWER or c in _UPPER or c in _DIGITS) for c in s)
    return sum([has_lower, has_upper, has_digit, has_symbol])


def charset_size(s: str) -> int:
    """
    Size of the alphabet the string appears to be drawn from.

    Hex strings count as a 16-symbol alphabet so that digests and hex keys
    are normalized against what they could have contained.
    """
    if not s:
        return 0
    chars = set(s)
    if chars <= _HEX:
        return 16
    size = 0
    if chars & _LOWER:
        size += 26
    if chars & _UPPER:
        size += 26
    if chars & _DIGITS:
        size += 10
    if chars - _LOWER - _UPPER - _DIGITS:
        size += _SYMBOL_ALPHABET
    return size


def score(candidate: str) -> float:
    """
    Randomness score in [0, 1].

    Shannon bits per character divided by the maximum achievable for the
    candidate's length and alphabet, scaled by character class diversity.

    Examples:
        >>> score("")
        0.0
        >>> score("thequickbrownfoxjumpsoverthelazydogagain") < 0.7
        True
        >>> score("q8Zr3LmX0vT7pKc2WnY5bH1dJ") > 0.85
        True
    """
    if len(candidate) < 2:
        return 0.0

    ceiling = math.log2(min(len(candidate), charset_size(candidate)))
    if ceiling <= 0:
        return 0.0

    normalized = min(1.0, shannon_entropy(candidate) / ceiling)
    return normalized * DIVERSITY_WEIGHTS[char_classes(candidate)]


def looks_like_secret(s: str, threshold: float = 0.7, min_length: int = 20) -> bool:
    """
    Heuristic to decide if a token looks like a machine-generated secret.

    Conditions (all must pass):
        - Length >= min_length
        - Character diversity: > 3 unique characters
        - At least 2 character classes among: [lowercase, uppercase, digits, special]
        - score(s) >= threshold

    Examples:
        >>> looks_like_secret("just_a_normal_config_value")
        False
        >>> looks_like_secret("q8Zr3LmX0vT7pKc2WnY5bH1dJ")
        True
        >>> looks_like_secret("aaaaaaaaaaaaaaaaaaaaaaaa")
        False

    Args:
        s (str): The input string.
        threshold (float, optional): The score threshold. Defaults to 0.7.
        min_length (int, optional): Shortest accepted token. Defaults to 20.

    Returns:
        bool: True if the string looks like a secret, False otherwise.
    """
    if len(s) < min_length:
        return False

    if len(set(s)) <= 3:
        return False

    if char_classes(s) < 2:
        return False

    return score(s) >= threshold


__all__ = ["shannon_entropy", "score", "looks_like_secret", "charset_size", "char_classes"]
