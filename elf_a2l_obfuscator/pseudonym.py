"""
Pseudonym generators.

All generators draw from an explicitly passed numpy Generator so a run can be
made reproducible in tests; production runs pass an unseeded one.
"""
import string

import numpy as np

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
LETTERS = string.ascii_letters
UNIT_CHARS = string.ascii_uppercase + string.ascii_lowercase + string.digits + "_-/?!"


def _pick(chars: str, rng: np.random.Generator, count: int = 1) -> str:
    indices = rng.integers(0, len(chars), size=count)
    return ''.join(chars[i] for i in indices)


def obfuscate_identifier(name: str, rng: np.random.Generator) -> str:
    """
    Obfuscate a debug info name.

    Every ASCII letter is replaced by a random letter of random case; digits,
    underscores and punctuation stay where they are, so the result has the
    same length and remains a valid identifier whenever the input was one.

    Args:
        name: Original name
        rng: Random generator

    Returns:
        str: Pseudonym of the same length
    """
    letters = iter(_pick(LETTERS, rng, len(name)))
    return ''.join(next(letters) if _is_letter(c) else c for c in name)


def obfuscate_string(text: str, rng: np.random.Generator) -> str:
    """
    Weak shape preserving obfuscation for A2L identifiers.

    Letters are replaced by random letters of the same case; everything else
    is kept, so "Abc.foo[33]" becomes something like "Xyz.bar[33]".

    Args:
        text: Original identifier
        rng: Random generator

    Returns:
        str: Pseudonym with the same length, case pattern and punctuation
    """
    lower = iter(_pick(LOWERCASE, rng, len(text)))
    upper = iter(_pick(UPPERCASE, rng, len(text)))
    output = []
    for c in text:
        if c in LOWERCASE:
            output.append(next(lower))
        elif c in UPPERCASE:
            output.append(next(upper))
        else:
            output.append(c)
    return ''.join(output)


def obfuscate_label(text: str, rng: np.random.Generator, words=(1, 4)) -> str:
    """
    Replace free text (long identifiers, comments) with random words.

    The result is not tied to the length of the input.

    Args:
        text: Original text
        rng: Random generator
        words: Inclusive (min, max) number of words to generate

    Returns:
        str: Random text, or "" for empty input
    """
    if not text:
        return text
    low, high = words
    count = int(rng.integers(low, high + 1))
    parts = [_pick(LOWERCASE, rng, int(rng.integers(3, 10))) for _ in range(count)]
    parts[0] = parts[0].capitalize()
    return ' '.join(parts)


def obfuscate_unit_string(text: str, rng: np.random.Generator) -> str:
    """Same-length random replacement for physical unit strings."""
    return _pick(UNIT_CHARS, rng, len(text)) if text else text


def mask_address(address: int, rng: np.random.Generator, address_size: int = 4,
                 keep_bits: int = 8) -> int:
    """
    Replace all but the low bits of an address with random bits.

    Keeping the low 8 bits preserves alignment and keeps the result plausible.

    Args:
        address: Original address
        rng: Random generator
        address_size: Address width in bytes
        keep_bits: Number of low bits to keep

    Returns:
        int: Masked address that fits in address_size bytes
    """
    width_mask = (1 << (8 * address_size)) - 1
    keep_mask = (1 << keep_bits) - 1
    random_bits = int.from_bytes(rng.bytes(address_size), 'little')
    return ((random_bits & ~keep_mask) | (address & keep_mask)) & width_mask


def _is_letter(c: str) -> bool:
    return c in LETTERS
