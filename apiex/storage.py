"""api-ex storage - saved requests and environments in a local JSON document.

Every read goes to disk; every write re-reads, modifies and rewrites the
whole document. There is no locking: one process is assumed to own the
storage directory at a time.
"""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from apiex.errors import NotFoundError, StorageError
from apiex.models import RequestTemplate
from apiex.validation import (
    validate_environment_name,
    validate_http_method,
    validate_request_name,
)

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "data.json"
HISTORY_FILE_NAME = "history.json"

DEFAULT_DATA: dict[str, Any] = {"requests": [], "environments": {}}
DEFAULT_HISTORY: dict[str, Any] = {"history": []}


# ── JSON documents ───────────────────────────────────────────────────────


def read_document(path: Path, default: dict) -> dict:
    """Load a JSON document. A missing file reads as a copy of ``default``.

    Every top-level key of ``default`` must be present with the same type.
    """
    if not path.exists():
        return copy.deepcopy(default)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise StorageError(f"Cannot read {path}: {e}", path=path) from e
    if not isinstance(data, dict):
        raise StorageError(f"Cannot read {path}: expected a JSON object", path=path)
    for key, value in default.items():
        if not isinstance(data.get(key), type(value)):
            raise StorageError(f"Malformed storage file {path}: bad '{key}'", path=path)
    return data


def check_records(path: Path, records: list, key: str) -> list[dict]:
    """Return ``records`` if every element is a JSON object."""
    if not all(isinstance(r, dict) for r in records):
        raise StorageError(f"Malformed storage file {path}: bad entry in '{key}'", path=path)
    return records


def load_for_write(path: Path, default: dict) -> dict:
    """Like read_document, but the file must already exist."""
    if not path.exists():
        raise StorageError(
            f"Storage file {path} does not exist. Initialize storage first.",
            path=path,
        )
    return read_document(path, default)


def write_document(path: Path, data: dict) -> None:
    """Write ``data`` through a sibling temp file so readers never see half a file."""
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        raise StorageError(f"Cannot write {path}: {e}", path=path) from e


def ensure_document(path: Path, default: dict) -> bool:
    """Create ``path`` with ``default`` content unless it exists. Returns True if created."""
    if path.exists():
        return False
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Cannot create {path.parent}: {e}", path=path.parent) from e
    write_document(path, copy.deepcopy(default))
    logger.debug("Created %s", path)
    return True


# ── Store ────────────────────────────────────────────────────────────────


class Store:
    """Saved requests and environments, backed by ``<storage_dir>/data.json``."""

    def __init__(self, storage_dir: str | Path):
        self.storage_dir = Path(storage_dir)
        self.data_file = self.storage_dir / DATA_FILE_NAME
        self.history_file = self.storage_dir / HISTORY_FILE_NAME

    def initialize(self) -> None:
        """Create the storage directory and empty documents. Existing files are kept."""
        from apiex.history import HistoryLedger

        ensure_document(self.data_file, DEFAULT_DATA)
        HistoryLedger(self.history_file).initialize()

    def _templates(self) -> list[RequestTemplate]:
        templates = []
        for r in self._request_records(read_document(self.data_file, DEFAULT_DATA)):
            try:
                templates.append(RequestTemplate.from_dict(r))
            except (KeyError, TypeError) as e:
                raise StorageError(
                    f"Malformed storage file {self.data_file}: bad request {r!r}",
                    path=self.data_file,
                ) from e
        return templates

    def _request_records(self, data: dict) -> list[dict]:
        return check_records(self.data_file, data["requests"], "requests")

    def _environments(self) -> dict[str, dict[str, str]]:
        environments = read_document(self.data_file, DEFAULT_DATA)["environments"]
        if not all(isinstance(v, dict) for v in environments.values()):
            raise StorageError(
                f"Malformed storage file {self.data_file}: bad entry in 'environments'",
                path=self.data_file,
            )
        return environments

    # requests

    def list_requests(self) -> list[RequestTemplate]:
        return self._templates()

    def get_request(self, name: str) -> RequestTemplate | None:
        for template in self._templates():
            if template.name == name:
                return template
        return None

    def save_request(self, template: RequestTemplate) -> RequestTemplate:
        """Insert or wholesale-replace the request with the same name."""
        template = RequestTemplate(
            name=validate_request_name(template.name),
            method=validate_http_method(template.method),
            url=template.url,
            headers=list(template.headers),
            body=template.body or "",
        )
        data = load_for_write(self.data_file, DEFAULT_DATA)
        requests = self._request_records(data)
        for i, existing in enumerate(requests):
            if existing.get("name") == template.name:
                requests[i] = template.to_dict()
                break
        else:
            requests.append(template.to_dict())
        write_document(self.data_file, data)
        return template

    # environments

    def list_environments(self) -> dict[str, dict[str, str]]:
        return {name: dict(v) for name, v in self._environments().items()}

    def get_environment(self, name: str) -> dict[str, str] | None:
        env = self._environments().get(name)
        return dict(env) if env is not None else None

    def save_environment(self, name: str, variables: dict[str, str]) -> None:
        """Replace the whole variable set of ``name``. Old keys are not kept."""
        name = validate_environment_name(name)
        data = load_for_write(self.data_file, DEFAULT_DATA)
        data["environments"][name] = dict(variables)
        write_document(self.data_file, data)

    def remove_environment(self, name: str) -> None:
        data = load_for_write(self.data_file, DEFAULT_DATA)
        environments = data["environments"]
        if name not in environments:
            available = ", ".join(environments) or "none"
            raise NotFoundError(
                f'Environment "{name}" not found. Available environments: {available}.',
            )
        del environments[name]
        write_document(self.data_file, data)
