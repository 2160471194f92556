"""api-ex CLI - save, replay and inspect HTTP/GraphQL requests."""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import click

from apiex import __version__
from apiex.errors import ApiExError, NetworkError

if TYPE_CHECKING:
    from apiex.config import Settings
    from apiex.history import HistoryLedger
    from apiex.runner import RequestRunner
    from apiex.storage import Store

TOOL_HELP = """\
api-ex: explore and test REST and GraphQL APIs from the terminal.

\b
QUICK START
───────────
  api-ex env add prod BASE_URL=https://api.example.com TOKEN=abc
  api-ex save users -u "{{BASE_URL}}/users" -H "Authorization: Bearer {{TOKEN}}"
  api-ex run users --env prod
  api-ex history

\b
PLACEHOLDERS
────────────
  {{KEY}} (or {{ KEY }}) in URLs, header values and bodies is replaced
  with KEY from the environment given by --env. Unknown keys are left
  in place and reported as a warning.

\b
STORAGE
───────
  Saved requests, environments and history live in one directory:
    1. --storage-dir
    2. API_EX_STORAGE_DIR (environment or ./.env)
    3. ~/.api-ex
  An optional config.yaml there sets defaults:

  \b
  defaults:
    timeout: 30000      # ms
    debug: false
    headers:
      User-Agent: api-ex

\b
OUTPUT FORMAT
─────────────
    STATUS: 200 OK
    TIME: 45ms
    BODY:
    {"id": 1, "name": "test"}

  --verbose adds response headers, --raw prints the body only.
  Exit codes: 0 ok, 1 invalid input or configuration, 2 network or storage.
"""


@dataclass
class App:
    """Objects shared by every subcommand, built once per invocation."""

    settings: "Settings"
    store: "Store"
    ledger: "HistoryLedger"
    runner: "RequestRunner"


class ClickEchoHandler(logging.Handler):
    """Route log records to stderr through click.echo."""

    def emit(self, record):
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def _configure_logging(debug: bool) -> None:
    logger = logging.getLogger("apiex")
    for h in list(logger.handlers):
        if isinstance(h, ClickEchoHandler):
            logger.removeHandler(h)
    handler = ClickEchoHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)


def _fail(error: ApiExError):
    click.echo(f"Error: {error.message}", err=True)
    sys.exit(error.exit_code)


@click.group(help=TOOL_HELP, context_settings={"max_content_width": 88})
@click.version_option(__version__, "-V", "--version")
@click.option("--debug", is_flag=True, default=False, help="Verbose diagnostic output.")
@click.option(
    "--storage-dir",
    default=None,
    help="Directory for saved requests, environments and history. Default: ~/.api-ex.",
)
@click.pass_context
def main(ctx, debug, storage_dir):
    """Save, replay and inspect HTTP/GraphQL requests."""
    from apiex.config import load_settings
    from apiex.executor import Dispatcher
    from apiex.history import HistoryLedger
    from apiex.runner import RequestRunner
    from apiex.storage import Store

    _configure_logging(debug)
    try:
        settings = load_settings(storage_dir, debug=debug)
        _configure_logging(settings.debug)
        store = Store(settings.storage_dir)
        store.initialize()
    except ApiExError as e:
        _fail(e)

    ledger = HistoryLedger(store.history_file)
    runner = RequestRunner(
        store,
        Dispatcher(debug=settings.debug),
        ledger,
        debug=settings.debug,
        default_headers=settings.headers,
    )
    ctx.obj = App(settings=settings, store=store, ledger=ledger, runner=runner)


# ── request / run / gql ─────────────────────────────────────────────────


def _timeout_ms(app, timeout):
    from apiex.validation import validate_timeout

    return validate_timeout(timeout) if timeout is not None else app.settings.timeout_ms


def _dispatch(app, send, method, url, env_name=None, saved_request_name=None):
    """Run ``send()``; record and report a failed dispatch before exiting."""
    try:
        return send()
    except NetworkError as e:
        click.echo(f"{method} {url} ==> ERROR", err=True)
        try:
            app.runner.record_failure(
                e,
                method=method,
                url=url,
                environment_name=env_name,
                saved_request_name=saved_request_name,
            )
        except ApiExError as storage_error:
            click.echo(f"Error: {storage_error.message}", err=True)
        _fail(e)
    except ApiExError as e:
        _fail(e)


def _echo_response(response, verbose, raw):
    from apiex.printer import format_response

    click.echo(format_response(response, verbose=verbose, raw=raw))


@main.command("request")
@click.option("-X", "--method", default="GET", help="HTTP method. Default: GET.")
@click.option("-u", "--url", default=None, help="Request URL (required).")
@click.option("-H", "--header", multiple=True, help="Header as 'Name: Value'. Repeatable.")
@click.option("-d", "--data", "body", default=None, help="Request body (JSON or raw string).")
@click.option("--env", "env_name", default=None, help="Environment for {{KEY}} interpolation.")
@click.option("--timeout", default=None, help="Timeout in milliseconds. Default: 30000.")
@click.option("--verbose", is_flag=True, default=False, help="Include response headers.")
@click.option("--raw", is_flag=True, default=False, help="Output the response body only.")
@click.pass_obj
def request_cmd(app, method, url, header, body, env_name, timeout, verbose, raw):
    """Send an ad-hoc HTTP request."""
    from apiex.validation import (
        validate_environment_name,
        validate_http_method,
        validate_json_data,
        validate_url,
    )

    if not url:
        click.echo("Error: --url is required.", err=True)
        click.echo("Usage: api-ex request --url <url> [options]", err=True)
        sys.exit(1)

    try:
        method = validate_http_method(method)
        url = validate_url(url, allow_placeholders=bool(env_name))
        timeout_ms = _timeout_ms(app, timeout)
        validate_json_data(body)
        if env_name:
            env_name = validate_environment_name(env_name)
    except ApiExError as e:
        _fail(e)

    adhoc = {"method": method, "url": url, "headers": list(header), "body": body}
    response = _dispatch(
        app,
        lambda: app.runner.execute(adhoc, env_name, timeout_ms),
        method,
        url,
        env_name,
    )
    _echo_response(response, verbose, raw)


@main.command("run")
@click.argument("name")
@click.option("--env", "env_name", default=None, help="Environment for {{KEY}} interpolation.")
@click.option("-H", "--header", multiple=True, help="Override a header for this run. Repeatable.")
@click.option("-d", "--data", "body", default=None, help="Override the request body.")
@click.option("--timeout", default=None, help="Timeout in milliseconds. Default: 30000.")
@click.option("--verbose", is_flag=True, default=False, help="Include response headers.")
@click.option("--raw", is_flag=True, default=False, help="Output the response body only.")
@click.pass_obj
def run_cmd(app, name, env_name, header, body, timeout, verbose, raw):
    """Execute a saved request."""
    try:
        template = app.runner.get_saved_request(name)
        timeout_ms = _timeout_ms(app, timeout)
    except ApiExError as e:
        click.echo(f"Error: {e.message}", err=True)
        click.echo('Use "api-ex ls" to see all saved requests.', err=True)
        sys.exit(e.exit_code)

    response = _dispatch(
        app,
        lambda: app.runner.run_saved(name, env_name, header, body, timeout_ms),
        template.method,
        template.url,
        env_name,
        saved_request_name=name,
    )
    _echo_response(response, verbose, raw)


@main.command("gql")
@click.option("--endpoint", required=True, help="GraphQL endpoint URL.")
@click.option("--query", default=None, help="Inline GraphQL query.")
@click.option(
    "--file",
    "query_file",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to a .gql or .graphql file.",
)
@click.option("--variables", default=None, help="GraphQL variables as a JSON object.")
@click.option("--env", "env_name", default=None, help="Environment for {{KEY}} interpolation.")
@click.option("-H", "--header", multiple=True, help="Header as 'Name: Value'. Repeatable.")
@click.option("--verbose", is_flag=True, default=False, help="Include response headers.")
@click.option("--raw", is_flag=True, default=False, help="Output the response body only.")
@click.pass_obj
def gql_cmd(app, endpoint, query, query_file, variables, env_name, header, verbose, raw):
    """Send a GraphQL query or mutation."""
    from apiex.core import build_graphql_request, parse_headers

    if not query and not query_file:
        click.echo("Error: Either --query or --file must be provided.", err=True)
        sys.exit(1)
    if query and query_file:
        click.echo("Warning: Both --query and --file provided. Using --file.", err=True)

    if query_file:
        try:
            query = Path(query_file).read_text(encoding="utf-8")
        except OSError as e:
            click.echo(f"Error: Cannot read {query_file}: {e}", err=True)
            sys.exit(1)

    gql_variables = {}
    if variables:
        try:
            gql_variables = json.loads(variables)
        except ValueError as e:
            click.echo(f"Error: Invalid JSON in --variables: {e}", err=True)
            sys.exit(1)

    adhoc = build_graphql_request(endpoint, query, gql_variables, parse_headers(header))
    response = _dispatch(
        app,
        lambda: app.runner.execute(
            adhoc,
            env_name,
            app.settings.timeout_ms,
            metadata={"kind": "graphql"},
        ),
        "POST",
        endpoint,
        env_name,
    )

    body = response.body
    if isinstance(body, dict) and body.get("errors"):
        click.echo("GraphQL errors:", err=True)
        for i, err in enumerate(body["errors"], 1):
            message = err.get("message") if isinstance(err, dict) else None
            click.echo(f"  {i}. {message or json.dumps(err)}", err=True)
    _echo_response(response, verbose, raw)


# ── save / ls ───────────────────────────────────────────────────────────


@main.command("save")
@click.argument("name")
@click.option("-X", "--method", default="GET", help="HTTP method. Default: GET.")
@click.option("-u", "--url", default=None, help="Request URL (required). Placeholders allowed.")
@click.option("-H", "--header", multiple=True, help="Header as 'Name: Value'. Repeatable.")
@click.option("-d", "--data", "body", default=None, help="Request body.")
@click.pass_obj
def save_cmd(app, name, method, url, header, body):
    """Save a reusable request."""
    from apiex.models import RequestTemplate
    from apiex.validation import (
        validate_http_method,
        validate_json_data,
        validate_request_name,
        validate_url,
    )

    if not url:
        click.echo("Error: --url is required.", err=True)
        click.echo("Usage: api-ex save <name> --url <url> [options]", err=True)
        sys.exit(1)

    try:
        name = validate_request_name(name)
        url = validate_url(url)
        method = validate_http_method(method)
        validate_json_data(body)

        if app.store.get_request(name) is not None:
            click.echo(f"Warning: Request '{name}' already exists. Overwriting...", err=True)

        template = app.store.save_request(
            RequestTemplate(name=name, method=method, url=url, headers=list(header), body=body or ""),
        )
    except ApiExError as e:
        _fail(e)

    click.echo(f"Saved request '{template.name}'")
    click.echo(f"  Method: {template.method}")
    click.echo(f"  URL: {template.url}")
    if template.headers:
        click.echo(f"  Headers: {len(template.headers)}")
    if template.body:
        from apiex.printer import truncate

        click.echo(f"  Body: {truncate(template.body, 50)}")


@main.command("ls")
@click.option("--verbose", is_flag=True, default=False, help="Show header count and body.")
@click.option("--filter", "name_filter", default=None, help="Only names containing TEXT.")
@click.pass_obj
def ls_cmd(app, verbose, name_filter):
    """List saved requests."""
    from apiex.printer import format_table, truncate

    try:
        requests = app.store.list_requests()
    except ApiExError as e:
        _fail(e)

    if not requests:
        click.echo("No saved requests.")
        click.echo("Use 'api-ex save' to create one.")
        return

    shown = requests
    if name_filter:
        shown = [r for r in requests if name_filter.lower() in r.name.lower()]
        if not shown:
            click.echo(f"No requests found matching '{name_filter}'")
            click.echo(f"Total saved requests: {len(requests)}")
            return

    if verbose:
        rows = [
            [
                r.name,
                r.method,
                truncate(r.url, 40),
                str(len(r.headers)) if r.headers else "-",
                truncate(r.body, 20) if r.body else "-",
            ]
            for r in shown
        ]
        click.echo(format_table(["Name", "Method", "URL", "Headers", "Body"], rows))
    else:
        rows = [[r.name, r.method, r.url] for r in shown]
        click.echo(format_table(["Name", "Method", "URL"], rows))

    click.echo(f"\nTotal: {len(shown)} request(s)")
    if name_filter and len(shown) < len(requests):
        click.echo(f"Showing filtered results. Total saved: {len(requests)}")


# ── env ─────────────────────────────────────────────────────────────────


@main.group("env")
def env_group():
    """Manage environments."""


def _parse_variables(pairs):
    """Parse KEY=VALUE pairs; malformed ones are reported and skipped."""
    variables = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key or value == "":
            click.echo(f"Warning: Invalid variable format '{pair}'. Expected KEY=VALUE", err=True)
            continue
        variables[key] = value
    return variables


def _save_environment(app, name, variables):
    try:
        app.store.save_environment(name, variables)
    except ApiExError as e:
        _fail(e)
    click.echo(f"Environment '{name.strip()}' updated with {len(variables)} variable(s):")
    for key, value in variables.items():
        click.echo(f"  {key}={value}")


@env_group.command("add")
@click.argument("name")
@click.argument("variables", nargs=-1)
@click.pass_obj
def env_add(app, name, variables):
    """Add or replace an environment: NAME KEY=VALUE...

    An existing environment's variables are replaced, not merged.
    """
    parsed = _parse_variables(variables)
    if not parsed:
        click.echo("Error: No valid variables provided. Expected KEY=VALUE.", err=True)
        sys.exit(1)
    _save_environment(app, name, parsed)


@env_group.command("import")
@click.argument("name")
@click.argument("env_file", type=click.Path(dir_okay=False))
@click.pass_obj
def env_import(app, name, env_file):
    """Replace environment NAME with the variables of a .env file."""
    from apiex.config import load_dotenv_variables

    try:
        variables = load_dotenv_variables(env_file)
    except ApiExError as e:
        _fail(e)
    if not variables:
        click.echo(f"Error: No variables found in {env_file}.", err=True)
        sys.exit(1)
    _save_environment(app, name, variables)


@env_group.command("list")
@click.option("--verbose", is_flag=True, default=False, help="Show variable values.")
@click.pass_obj
def env_list(app, verbose):
    """List environments."""
    from apiex.printer import format_table, truncate

    try:
        environments = app.store.list_environments()
    except ApiExError as e:
        _fail(e)

    if not environments:
        click.echo("No environments defined.")
        click.echo("Use 'api-ex env add <name> KEY=VALUE' to create one.")
        return

    if verbose:
        for env_name, variables in environments.items():
            click.echo(f"{env_name}:")
            for key, value in variables.items():
                click.echo(f"  {key}={value}")
    else:
        rows = [
            [env_name, len(variables), truncate(", ".join(variables), 50)]
            for env_name, variables in environments.items()
        ]
        click.echo(format_table(["Name", "Variables", "Keys"], rows))
    click.echo(f"\nTotal: {len(environments)} environment(s)")


@env_group.command("rm")
@click.argument("name")
@click.pass_obj
def env_rm(app, name):
    """Remove an environment."""
    try:
        app.store.remove_environment(name)
    except ApiExError as e:
        _fail(e)
    click.echo(f"Environment '{name}' removed.")


# ── history ─────────────────────────────────────────────────────────────


@main.command("history")
@click.option("--limit", type=int, default=10, show_default=True, help="Entries to show.")
@click.option("--method", default=None, help="Only this HTTP method.")
@click.option("--status", type=int, default=None, help="Only this status code.")
@click.pass_obj
def history_cmd(app, limit, method, status):
    """Show recent requests, most recent first."""
    from apiex.printer import format_table, truncate

    try:
        entries = app.ledger.query(limit=limit, method=method, status=status)
    except ApiExError as e:
        _fail(e)

    if not entries:
        click.echo("No history yet.")
        click.echo("Run 'api-ex request' or 'api-ex run' to create history entries.")
        return

    rows = []
    for e in entries:
        label = f"[{e['saved_request_name']}]" if e.get("saved_request_name") else ""
        elapsed = e.get("elapsed_ms")
        rows.append(
            [
                e.get("timestamp", ""),
                e.get("method", "?"),
                f"{truncate(e.get('url') or '?', 50)} {label}".strip(),
                e.get("status") if e.get("status") is not None else "ERR",
                f"{elapsed}ms" if elapsed is not None else "-",
                e.get("environment_name") or "-",
            ],
        )
    click.echo(format_table(["Time", "Method", "URL", "Status", "Duration", "Env"], rows))
