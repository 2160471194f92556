"""api-ex validation - caller input checks run before any storage or network I/O."""

import json
import logging
import re
from urllib.parse import urlparse

from apiex.errors import ValidationError

logger = logging.getLogger(__name__)

VALID_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
MAX_NAME_LENGTH = 50
MAX_TIMEOUT_MS = 600000

_INVALID_NAME_CHARS = re.compile(r'[/\\:*?"<>|]')
_PLACEHOLDER = re.compile(r"\{\{.*?\}\}")


def is_valid_url(url) -> bool:
    """True for http(s) URLs with a host.

    A leading placeholder (``{{BASE_URL}}/users``) stands for scheme and
    host; any other placeholder counts as plain text.
    """
    if not url or not isinstance(url, str):
        return False
    leading = _PLACEHOLDER.match(url)
    if leading:
        url = "http://placeholder" + url[leading.end() :]
    parsed = urlparse(_PLACEHOLDER.sub("placeholder", url))
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_json(text) -> bool:
    if not text or not isinstance(text, str):
        return False
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _validate_name(name, label: str) -> str:
    if name is None or not isinstance(name, str) or name == "":
        raise ValidationError(f"{label} is required.")
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError(f"{label} cannot be empty.")
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"{label} is too long ({len(trimmed)} chars, max {MAX_NAME_LENGTH}).",
        )
    if _INVALID_NAME_CHARS.search(trimmed):
        raise ValidationError(
            f'{label} "{trimmed}" contains invalid characters (/ \\ : * ? " < > |).',
        )
    return trimmed


def validate_request_name(name) -> str:
    """Return the trimmed request name or raise ValidationError.

    Spaces are accepted but discouraged, since names are typed on the
    command line.
    """
    trimmed = _validate_name(name, "Request name")
    if " " in trimmed:
        logger.warning(
            "Request name %r contains spaces; quote it when running.",
            trimmed,
        )
    return trimmed


def validate_environment_name(name) -> str:
    return _validate_name(name, "Environment name")


def validate_http_method(method) -> str:
    if not method or not isinstance(method, str):
        raise ValidationError("HTTP method is required.")
    upper = method.strip().upper()
    if upper not in VALID_METHODS:
        raise ValidationError(
            f"Invalid HTTP method '{method}'. Valid methods: {', '.join(VALID_METHODS)}.",
        )
    return upper


def validate_timeout(value) -> int:
    """Accept an int or a numeric string of milliseconds."""
    if isinstance(value, bool):
        value = None
    if isinstance(value, str):
        value = value.strip()
        value = int(value) if value.isdigit() else None
    if not isinstance(value, int) or value <= 0:
        raise ValidationError("Timeout must be a positive number of milliseconds.")
    if value > MAX_TIMEOUT_MS:
        raise ValidationError(f"Timeout cannot exceed {MAX_TIMEOUT_MS}ms.")
    return value


def validate_url(url, allow_placeholders: bool = True) -> str:
    if url is None or not isinstance(url, str) or url == "":
        raise ValidationError("URL is required.")
    trimmed = url.strip()
    if not trimmed:
        raise ValidationError("URL cannot be empty.")
    if not allow_placeholders and _PLACEHOLDER.search(trimmed):
        raise ValidationError(f"Invalid URL format: {trimmed}")
    if not is_valid_url(trimmed):
        raise ValidationError(f"Invalid URL format: {trimmed}")
    return trimmed


def validate_json_data(data):
    """Check bodies that look like JSON; anything else is a raw body."""
    if not data or not isinstance(data, str):
        return data
    stripped = data.strip()
    if stripped.startswith(("{", "[")) and not is_valid_json(stripped):
        raise ValidationError(f"Invalid JSON format in request body: {data}")
    return data
