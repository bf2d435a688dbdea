"""Delimiter-based primitives for parsing ``label: value`` lines of OCR text.

OCR output of identity cards is a loose sequence of lines in which a field
label is usually followed by one of a few separator characters. These helpers
locate that separator, strip the punctuation noise OCR leaves around values
and split a value in two around a sub-field separator.
"""

DELIMITERS: tuple[str, ...] = (":", "-", "—")
NOISE_CHARS: tuple[str, ...] = ("-", "—", "|", ".", ":")


def position(line: str) -> int:
    """Return the index of the earliest usable delimiter in ``line``.

    Only the first occurrence of each delimiter is considered and a
    delimiter at index 0 does not count.

    Args:
        line: Line of text to scan.

    Returns:
        Smallest positive delimiter index, or 0 if there is none.
    """
    pos = 0
    for sep in DELIMITERS:
        p = line.find(sep)
        if p > 0 and (pos == 0 or p < pos):
            pos = p
    return pos


def pick(line: str) -> str:
    """Return the value part of a ``label: value`` line.

    Args:
        line: Line of text.

    Returns:
        Stripped text after the delimiter, or ``line`` unchanged when it
        has no usable delimiter.
    """
    pos = position(line)
    return line[pos + 1 :].strip() if pos > 0 else line


def clean(s: str | None) -> str | None:
    """Strip whitespace and punctuation noise from both ends of ``s``.

    The front is stripped first, then the back, re-trimming whitespace
    after each removed character.

    Args:
        s: Text to clean. Empty or ``None`` is returned as is.

    Returns:
        Cleaned text.
    """
    if not s:
        return s
    s = s.strip()
    while s and s[0] in NOISE_CHARS:
        s = s[1:].strip()
    while s and s[-1] in NOISE_CHARS:
        s = s[:-1].strip()
    return s


def split(s: str, separator: str) -> tuple[str, str] | None:
    """Split ``s`` around the first case-insensitive match of ``separator``.

    A separator found at the very start of ``s`` is not a split point.

    Args:
        s: Text to split.
        separator: Separator to search for.

    Returns:
        Cleaned ``(left, right)`` pair, or ``None`` when there is no match.
    """
    p = s.lower().find(separator.lower())
    if p <= 0:
        return None
    return clean(s[:p]), clean(s[p + len(separator) :])


def split_property(
    result: dict[str, str],
    s: str,
    separator: str,
    keys: tuple[str, str],
) -> bool:
    """Split ``s`` and store both halves in ``result`` under ``keys``.

    ``result`` is left untouched when ``separator`` is not found.

    Returns:
        Whether the split succeeded.
    """
    parts = split(s, separator)
    if parts is None:
        return False
    result[keys[0]], result[keys[1]] = parts
    return True
