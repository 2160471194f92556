"""api-ex runner - template → environment → dispatch → history, for one request."""

import logging
from dataclasses import replace

from apiex.core import build_request, interpolate_request
from apiex.errors import ConfigurationError, ValidationError
from apiex.executor import Dispatcher
from apiex.history import HistoryLedger
from apiex.models import RequestTemplate, Response
from apiex.storage import Store

logger = logging.getLogger(__name__)


class RequestRunner:
    """Coordinates Store, Dispatcher and HistoryLedger. Holds no state of its own."""

    def __init__(
        self,
        store: Store,
        dispatcher: Dispatcher,
        ledger: HistoryLedger,
        debug: bool = False,
        default_headers: dict[str, str] | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.debug = debug
        self.default_headers = dict(default_headers or {})

    def resolve_environment(self, name: str) -> dict[str, str]:
        """Variables of environment ``name``; ConfigurationError lists the known ones."""
        env_name = name.strip() if isinstance(name, str) else ""
        if not env_name:
            raise ValidationError("Environment name is required.")

        environments = self.store.list_environments()
        if env_name not in environments:
            if environments:
                suffix = f"Available environments: {', '.join(environments)}."
            else:
                suffix = "No environments have been defined yet."
            raise ConfigurationError(f'Unknown environment "{env_name}". {suffix}')
        return dict(environments[env_name])

    def get_saved_request(self, name: str) -> RequestTemplate:
        template = self.store.get_request(name)
        if template is None:
            names = [t.name for t in self.store.list_requests()]
            if names:
                suffix = f"Saved requests: {', '.join(names)}."
            else:
                suffix = "No requests have been saved yet."
            raise ConfigurationError(f"No saved request found with name '{name}'. {suffix}")
        return template

    def execute(
        self,
        request: RequestTemplate | dict,
        environment_name: str | None = None,
        timeout_ms: int | None = None,
        metadata: dict | None = None,
    ) -> Response:
        """Resolve, dispatch and record one request.

        Failures propagate unchanged. Nothing is recorded when dispatch
        fails; the calling command decides whether to log the failure
        (see ``record_failure``).
        """
        resolved = build_request(request, timeout_ms, self.default_headers)

        if environment_name:
            variables = self.resolve_environment(environment_name)
            if self.debug:
                logger.debug("Environment loaded: %s", variables)
                logger.debug("Request before interpolation: %s", resolved)
            resolved, unresolved = interpolate_request(resolved, variables)
            if self.debug:
                logger.debug("Request after interpolation: %s", resolved)
            if unresolved:
                logger.debug("Unresolved placeholders: %s", ", ".join(unresolved))

        response = self.dispatcher.send(resolved)

        entry = {
            **(metadata or {}),
            "method": resolved.method,
            "url": resolved.url,
            "status": response.status_code,
            "elapsed_ms": response.elapsed_ms,
            "environment_name": environment_name.strip() if environment_name else None,
        }
        if isinstance(request, RequestTemplate):
            entry["saved_request_name"] = request.name
        self.ledger.append(entry)
        return response

    def run_saved(
        self,
        name: str,
        environment_name: str | None = None,
        header_overrides=(),
        body: str | None = None,
        timeout_ms: int | None = None,
    ) -> Response:
        """Execute a saved request, with header and body overrides for this run only."""
        template = self.get_saved_request(name)
        overrides = {}
        if header_overrides:
            overrides["headers"] = [*template.headers, *header_overrides]
        if body:
            overrides["body"] = body
        if overrides:
            template = replace(template, **overrides)
        return self.execute(template, environment_name, timeout_ms)

    def record_failure(
        self,
        error: Exception,
        method: str | None = None,
        url: str | None = None,
        environment_name: str | None = None,
        saved_request_name: str | None = None,
    ) -> dict:
        """Append a history entry for a dispatch that produced no Response."""
        entry = {
            "method": getattr(error, "method", None) or method,
            "url": getattr(error, "url", None) or url,
            "status": None,
            "elapsed_ms": None,
            "environment_name": environment_name,
            "error": str(error),
        }
        if saved_request_name:
            entry["saved_request_name"] = saved_request_name
        return self.ledger.append(entry)
