"""Shared fixtures for api-ex tests."""

from unittest.mock import Mock

import pytest
from click.testing import CliRunner

from apiex.executor import Dispatcher
from apiex.history import HistoryLedger
from apiex.models import ResolvedRequest, Response
from apiex.runner import RequestRunner
from apiex.storage import Store


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    """Point API_EX_STORAGE_DIR at a temp dir and run from a clean CWD."""
    sdir = tmp_path / "store"
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.chdir(cwd)
    monkeypatch.setenv("API_EX_STORAGE_DIR", str(sdir))
    monkeypatch.delenv("API_EX_DEBUG", raising=False)
    return sdir


@pytest.fixture
def store(storage_dir):
    s = Store(storage_dir)
    s.initialize()
    return s


@pytest.fixture
def ledger(store):
    return HistoryLedger(store.history_file)


@pytest.fixture
def session():
    """Stand-in for requests.Session; configure .request per test."""
    return Mock()


@pytest.fixture
def request_runner(store, ledger, session):
    return RequestRunner(store, Dispatcher(session=session), ledger)


def make_transport_response(status_code=200, json_body=None, text="", headers=None, reason="OK"):
    """Mock of a requests.Response."""
    resp = Mock()
    resp.status_code = status_code
    resp.reason = reason
    resp.headers = headers or {}
    if json_body is not None:
        resp.json.return_value = json_body
        resp.text = text or ""
    else:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
        resp.text = text
    return resp


@pytest.fixture
def transport_response():
    return make_transport_response


def make_response(
    status_code=200,
    body=None,
    headers=None,
    elapsed_ms=42,
    status_text="OK",
    method="GET",
    url="http://localhost:3000/health",
):
    """Factory for Response objects returned by a patched Dispatcher.send."""
    return Response(
        status_code=status_code,
        status_text=status_text,
        headers=headers or {},
        body=body,
        elapsed_ms=elapsed_ms,
        request=ResolvedRequest(method=method, url=url),
    )


@pytest.fixture
def response_factory():
    return make_response
