"""
Form id and URL slug helpers.
"""
import re

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")


def derive_form_id(name: str) -> str:
    """
    Derive a slug-safe form id from a display name.

    Lowercases, drops everything outside letters, digits, whitespace and
    hyphens, turns whitespace into hyphens, collapses hyphen runs and trims
    hyphens from both ends. May return an empty string.

    Args:
        name: Form display name

    Returns:
        Id matching ^[a-z0-9-]*$
    """
    form_id = _DISALLOWED.sub("", (name or "").lower())
    form_id = _WHITESPACE.sub("-", form_id)
    form_id = _HYPHEN_RUNS.sub("-", form_id)
    return form_id.strip("-")


def is_valid_slug(value: str) -> bool:
    return bool(value) and SLUG_PATTERN.match(value) is not None
