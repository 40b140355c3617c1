from __future__ import annotations

__all__ = ["parse_decimal"]


def parse_decimal(text: str) -> int | None:
    """Parse a plain run of ASCII digits.

    Unlike ``int()``, this rejects signs, ``_`` separators and non-ASCII
    digits, so only what a user would type as a decimal number is accepted.

    Returns:
        The value, or None when ``text`` is not a plain decimal number

    """
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    try:
        return int(text)
    except ValueError:
        # longer than the interpreter's int/str conversion limit
        return None
