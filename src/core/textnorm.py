from __future__ import annotations

import re
import unicodedata

# One or more half/full-width spaces with a non-space character on each side.
_NAME_SEPARATOR_RE = re.compile(r"(?<=\S)[\u0020\u3000]+(?=\S)")


def _collapse_unicode_spaces(s: str) -> str:
    """
    Replace any Unicode space separators (Zs) with a regular ASCII space.
    """
    return "".join(" " if unicodedata.category(ch) == "Zs" else ch for ch in s)


def _strip_invisibles_and_controls(s: str) -> str:
    """
    Remove invisible format characters (Cf), e.g. zero-width joiners and BOM,
    and control characters (Cc) pasted along with a name.
    """
    return "".join(ch for ch in s if unicodedata.category(ch) not in {"Cf", "Cc"})


def has_name_separator(v: str | None) -> bool:
    """True when family and given name are separated by a half- or full-width space."""
    return bool(v) and bool(_NAME_SEPARATOR_RE.search(v))


def sanitize_name(v: str | None) -> str:
    """
    Canonicalize a person's name for storage and lookup:

      • NFC normalize.
      • Convert all Unicode space separators (including U+3000) to ' '.
      • Strip invisible format/control chars.
      • Collapse whitespace runs to a single space and trim.

    Two spellings that differ only in spacing therefore track as one name.
    """
    if not v:
        return ""
    s = unicodedata.normalize("NFC", v)
    s = _collapse_unicode_spaces(s)
    s = _strip_invisibles_and_controls(s)
    s = re.sub(r"\s+", " ", s).strip()
    return s
