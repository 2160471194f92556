"""api-ex executor - HTTP request dispatch."""

import json
import logging
import time
from dataclasses import replace

import requests

from apiex.errors import NetworkError, ValidationError
from apiex.models import DEFAULT_TIMEOUT_MS, ResolvedRequest, Response

logger = logging.getLogger(__name__)


class Dispatcher:
    """Send one ResolvedRequest and normalize the outcome.

    Every HTTP status is a Response; only transport failures raise
    NetworkError. ``session`` is anything with a requests-style
    ``request()`` method.
    """

    def __init__(self, session: requests.Session | None = None, debug: bool = False):
        self.session = session or requests.Session()
        self.debug = debug

    def send(self, request: ResolvedRequest) -> Response:
        if request is None:
            raise ValidationError("Request configuration is required")
        if not request.method:
            raise ValidationError("Request method is required")
        if not request.url:
            raise ValidationError("Request URL is required")

        timeout_ms = request.timeout_ms if request.timeout_ms is not None else DEFAULT_TIMEOUT_MS
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
            raise ValidationError("Timeout must be a positive number of milliseconds.")

        method = request.method.upper()
        headers = dict(request.headers or {})
        if request.body and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
        request = replace(request, method=method, headers=headers, timeout_ms=timeout_ms)

        body = request.body
        if isinstance(body, str):
            body = body.encode("utf-8")

        if self.debug:
            logger.debug(
                "Request config: %s",
                json.dumps(
                    {
                        "method": method,
                        "url": request.url,
                        "headers": headers,
                        "body": request.body,
                        "timeout": timeout_ms,
                    },
                    indent=2,
                    default=str,
                ),
            )

        start = time.monotonic()
        try:
            resp = self.session.request(
                method=method,
                url=request.url,
                headers=headers,
                data=body or None,
                timeout=timeout_ms / 1000,
                allow_redirects=True,
            )
        except requests.exceptions.Timeout as e:
            raise NetworkError(
                f"Request timeout after {timeout_ms}ms: {method} {request.url}",
                url=request.url,
                method=method,
                timeout_ms=timeout_ms,
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(
                f"Unable to reach {request.url}. {e}",
                url=request.url,
                method=method,
            ) from e
        except Exception as e:
            # other RequestExceptions, and errors raised while encoding the
            # request (UnicodeEncodeError for a non latin-1 header value)
            raise NetworkError(
                f"Request failed: {method} {request.url}: {e}",
                url=request.url,
                method=method,
            ) from e
        elapsed_ms = max(0, int(round((time.monotonic() - start) * 1000)))

        try:
            parsed = resp.json()
        except ValueError:
            parsed = resp.text

        if self.debug:
            logger.debug("Response headers: %s", dict(resp.headers))

        return Response(
            status_code=resp.status_code,
            status_text=resp.reason or "",
            headers=dict(resp.headers),
            body=parsed,
            elapsed_ms=elapsed_ms,
            request=request,
        )
