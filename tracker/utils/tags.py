"""
Player tag utilities.

Handles normalization of user-typed player tags into the canonical
``#XXXXXXX`` form used as the storage key and in API requests.
"""

from urllib.parse import quote

from tracker.utils.exceptions import BadTagError


def normalize_tag(raw_tag: str) -> str:
    """
    Normalize a player tag into canonical form.

    Surrounding whitespace is removed, the tag is upper-cased and any
    ``#`` characters are dropped before a single leading ``#`` is added.

    Args:
        raw_tag: Tag as typed by a user or returned by the API

    Returns:
        Canonical tag, e.g. ``#2PP``

    Raises:
        BadTagError: If the tag is empty or contains invalid characters
    """
    if raw_tag is None:
        raise BadTagError("", "tag is required")

    body = raw_tag.strip().upper().replace('#', '')

    if not body:
        raise BadTagError(raw_tag, "tag is empty")

    if not body.isalnum() or not body.isascii():
        raise BadTagError(raw_tag, "tag may only contain letters and digits")

    return f"#{body}"


def is_valid_tag(raw_tag: str) -> bool:
    """Check whether a tag can be normalized."""
    try:
        normalize_tag(raw_tag)
        return True
    except BadTagError:
        return False


def encode_tag(tag: str) -> str:
    """URL-encode a normalized tag for use in a request path."""
    return quote(normalize_tag(tag), safe='')
