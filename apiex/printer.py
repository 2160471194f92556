"""api-ex printer - plain-text rendering of responses and listings."""

import json
from typing import Any

import click

from apiex.models import Response


def format_body(body: Any) -> str:
    if isinstance(body, dict | list):
        return json.dumps(body, indent=2)
    return str(body) if body is not None else ""


def format_response(response: Response, verbose: bool = False, raw: bool = False) -> str:
    """Format a response for CLI output.

    Default:
        STATUS: 200 OK
        TIME: 45ms
        BODY:
        {"id": 1}

    ``verbose`` adds a HEADERS section; ``raw`` prints the body only.
    """
    if raw:
        return format_body(response.body)

    status = f"STATUS: {response.status_code}"
    if response.status_text:
        status += f" {response.status_text}"
    lines = [
        click.style(status, fg="green" if response.ok else "red"),
        f"TIME: {response.elapsed_ms}ms",
    ]

    if verbose and response.headers:
        lines.append("HEADERS:")
        for key, value in response.headers.items():
            lines.append(f"  {key}: {value}")

    if response.body not in (None, ""):
        lines.append("BODY:")
        lines.append(format_body(response.body))

    return "\n".join(lines)


def truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[:width] + "..."


def format_table(headers: list[str], rows: list[list[Any]]) -> str:
    """Left-aligned columns, two spaces apart."""
    cells = [[str(h) for h in headers]] + [["" if c is None else str(c) for c in r] for r in rows]
    widths = [max(len(row[i]) for row in cells) for i in range(len(headers))]
    out = []
    for n, row in enumerate(cells):
        out.append("  ".join(c.ljust(widths[i]) for i, c in enumerate(row)).rstrip())
        if n == 0:
            out.append("  ".join("-" * w for w in widths))
    return "\n".join(out)
