"""
String Helpers: Centralized Naming Convention Converter.

Single source of truth for key normalization between the backend's
payload shapes and the snake_case models.  All camelCase <-> snake_case
conversion flows through here; no hand-written field maps.
"""

from __future__ import annotations

import re
from typing import Union, overload

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "JsonValue",
    "normalize_keys",
    "sanitize_input",
    "to_camel_case",
    "to_snake_case",
]

# ---------------------------------------------------------------------------
# Recursive JSON value type
# ---------------------------------------------------------------------------

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns
# ---------------------------------------------------------------------------

# "HTTPStatus" -> "HTTP_Status"
_RE_UPPER_RUN = re.compile(r"([A-Z]+)([A-Z][a-z])")

# "avatarUrl" -> "avatar_Url"
_RE_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")

_RE_MULTI_UNDERSCORE = re.compile(r"_+")

# Markup and script fragments stripped from free-text input.
_RE_ANGLE_BRACKETS = re.compile(r"[<>]")
_RE_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_RE_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Case-conversion primitives
# ---------------------------------------------------------------------------


def to_snake_case(name: str) -> str:
    """Convert a camelCase, PascalCase, or mixed-case string to snake_case.

    Examples::

        firstName                -> first_name
        avatarUrl                -> avatar_url
        unreadNotificationsCount -> unread_notifications_count
        isActive                 -> is_active
        already_snake            -> already_snake

    Known limitation: an all-uppercase acronym followed directly by a
    lowercase letter (``URLpath``) splits incorrectly.  The API never
    produces such keys.
    """
    s1 = _RE_UPPER_RUN.sub(r"\1_\2", name)
    s2 = _RE_CAMEL_BOUNDARY.sub(r"\1_\2", s1)
    s3 = _RE_MULTI_UNDERSCORE.sub("_", s2)
    return s3.lower()


def to_camel_case(name: str) -> str:
    """Convert snake_case to lowerCamelCase (``phone_number`` -> ``phoneNumber``)."""
    head, *tail = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in tail)


# ---------------------------------------------------------------------------
# Recursive key-normalisation helpers
# ---------------------------------------------------------------------------


@overload
def normalize_keys(data: dict[str, JsonValue]) -> dict[str, JsonValue]: ...


@overload
def normalize_keys(data: list[JsonValue]) -> list[JsonValue]: ...


@overload
def normalize_keys(data: JsonValue) -> JsonValue: ...


def normalize_keys(
    data: Union[dict[str, JsonValue], list[JsonValue], JsonValue],
) -> Union[dict[str, JsonValue], list[JsonValue], JsonValue]:
    """
    Recursively convert all dictionary keys to snake_case.

    Applied at the gateway boundary to incoming profile payloads before
    they reach the model layer.
    """
    if isinstance(data, dict):
        return {to_snake_case(k): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


def sanitize_input(value: str) -> str:
    """Strip markup and inline-script fragments from free-text input.

    Removes ``<`` / ``>``, ``javascript:`` schemes and ``on*=`` event
    handler attributes, then trims surrounding whitespace.
    """
    cleaned = _RE_ANGLE_BRACKETS.sub("", value)
    cleaned = _RE_JS_SCHEME.sub("", cleaned)
    cleaned = _RE_EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()
