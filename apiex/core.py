"""api-ex core - placeholder interpolation and request building."""

import json
import logging
import re
from dataclasses import replace
from typing import Any, NamedTuple

from apiex.models import DEFAULT_TIMEOUT_MS, RequestTemplate, ResolvedRequest

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")


class Interpolation(NamedTuple):
    """Interpolated value plus the placeholder keys that had no variable."""

    value: Any
    unresolved: list[str]


def interpolate_text(text: Any, variables: dict[str, Any]) -> Interpolation:
    """Replace ``{{ KEY }}`` placeholders with values from ``variables``.

    - A value of None (or the string "null") substitutes to "".
    - Other values are str()-coerced.
    - A missing key leaves the placeholder as-is and is reported in
      ``unresolved``; a warning is logged, nothing is raised.
    - Non-strings are returned untouched.
    """
    if not isinstance(text, str) or "{{" not in text:
        return Interpolation(text, [])

    unresolved: list[str] = []

    def _replace(m: re.Match) -> str:
        key = m.group(1)
        if key in variables:
            value = variables[key]
            if value is None or value == "null":
                return ""
            return str(value)
        logger.warning('Missing environment value for "%s".', key)
        unresolved.append(key)
        return m.group(0)

    return Interpolation(PLACEHOLDER_RE.sub(_replace, text), unresolved)


def interpolate_request(request: ResolvedRequest, variables: dict[str, Any]) -> Interpolation:
    """Interpolate url, header values and body. Returns a new ResolvedRequest."""
    unresolved: list[str] = []

    url, missing = interpolate_text(request.url, variables)
    unresolved.extend(missing)

    headers: dict[str, Any] = {}
    for name, value in request.headers.items():
        headers[name], missing = interpolate_text(value, variables)
        unresolved.extend(missing)

    body, missing = interpolate_text(request.body, variables)
    unresolved.extend(missing)

    resolved = replace(request, url=url, headers=headers, body=body)
    return Interpolation(resolved, unresolved)


def parse_headers(lines) -> dict[str, str]:
    """Parse ``"Name: Value"`` lines into a dict. Later duplicates win."""
    headers: dict[str, str] = {}
    for line in lines or ():
        if ":" not in line:
            logger.warning("Invalid header format '%s'. Expected 'Key: Value'", line)
            continue
        k, v = line.split(":", 1)
        headers[k.strip()] = v.strip()
    return headers


def build_request(
    request: RequestTemplate | dict,
    timeout_ms: int | None = None,
    default_headers: dict[str, str] | None = None,
) -> ResolvedRequest:
    """Turn a saved template or an ad-hoc mapping into an uninterpolated ResolvedRequest.

    Ad-hoc mappings carry ``method``, ``url`` and optionally ``headers``
    (list of lines or a dict) and ``body``.
    """
    if isinstance(request, RequestTemplate):
        method, url, raw_headers, body = (
            request.method,
            request.url,
            request.headers,
            request.body or None,
        )
    else:
        method = request.get("method") or "GET"
        url = request.get("url")
        raw_headers = request.get("headers")
        body = request.get("body")

    headers = dict(default_headers or {})
    if isinstance(raw_headers, dict):
        headers.update(raw_headers)
    else:
        headers.update(parse_headers(raw_headers))

    return ResolvedRequest(
        method=(method or "").upper(),
        url=url,
        headers=headers,
        body=body,
        timeout_ms=timeout_ms if timeout_ms is not None else DEFAULT_TIMEOUT_MS,
    )


def build_graphql_request(
    endpoint: str,
    query: str,
    variables: dict | None = None,
    headers: dict[str, str] | None = None,
) -> dict:
    """Ad-hoc POST carrying a GraphQL query and its variables as JSON."""
    return {
        "method": "POST",
        "url": endpoint,
        "headers": {"Content-Type": "application/json", **(headers or {})},
        "body": json.dumps({"query": query, "variables": variables or {}}),
    }
