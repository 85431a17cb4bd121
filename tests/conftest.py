# tests/conftest.py
"""
Shared fakes: an LLM client and a warehouse connector that record their calls,
plus an app/client wired to them through create_app().
"""
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from querypilot.app import create_app
from querypilot.connectors.bigquery_connector import (
    ExecutionResult, ValidationResult, classify_statement,
)
from querypilot.settings import Settings
from querypilot.store import MemoryQueryStore


class FakeLLM:
    """Returns queued replies in order; falls back to `default`."""

    provider = "fake"

    def __init__(self, replies: Optional[List[str]] = None, default: str = "SELECT 1"):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[List[Dict[str, str]]] = []
        self.error: Optional[Exception] = None
        self.closed = False

    def chat(self, messages, max_tokens=None, temperature=0.0) -> Dict[str, Any]:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        text = self.replies.pop(0) if self.replies else self.default
        return {"text": text, "model": "fake-model", "response_id": f"fake-{len(self.calls)}", "raw": None}

    def close(self):
        self.closed = True


class FakeWarehouse:
    """Dry runs succeed unless the SQL contains one of `invalid_markers`."""

    def __init__(self):
        self.invalid_markers = ["SELEC "]
        self.total_bytes = 1_500_000_000
        self.rows: List[Dict[str, Any]] = [{"name": "alice", "total": 3}, {"name": "bob", "total": 5}]
        self.affected_rows = 7
        self.validate_calls: List[str] = []
        self.execute_calls: List[str] = []
        self.error: Optional[Exception] = None
        self.closed = False

    def validate_query(self, sql, project_id, dataset) -> ValidationResult:
        self.validate_calls.append(sql)
        if not sql or any(m in sql for m in self.invalid_markers):
            return ValidationResult(valid=False, processing_gb="0", message="Syntax error: Unexpected identifier")
        return ValidationResult(valid=True, processing_gb=f"{self.total_bytes / 1e9:.2f}",
                                message="Query is valid", total_bytes=self.total_bytes)

    def execute_query(self, sql, project_id, dataset) -> ExecutionResult:
        self.execute_calls.append(sql)
        if self.error is not None:
            raise self.error
        operation = classify_statement(sql)
        if operation == "READ":
            return ExecutionResult(operation=operation, rows=list(self.rows))
        return ExecutionResult(operation=operation, affected_rows=self.affected_rows)

    def list_projects(self):
        return ["proj-a", "proj-b"]

    def list_datasets(self, project_id):
        return [f"{project_id}_sales", f"{project_id}_ops"]

    def list_tables(self, project_id, dataset):
        return ["orders", "customers"]

    def close(self):
        self.closed = True


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_warehouse():
    return FakeWarehouse()


@pytest.fixture
def store():
    return MemoryQueryStore()


@pytest.fixture
def settings():
    return Settings(prometheus_enabled=True, log_as_json=False)


@pytest.fixture
def client(settings, fake_llm, fake_warehouse, store):
    app = create_app(settings=settings, llm=fake_llm, warehouse=fake_warehouse, store=store)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
