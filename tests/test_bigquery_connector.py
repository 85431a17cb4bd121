# tests/test_bigquery_connector.py
import base64
import datetime
import decimal
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as gexc

from querypilot.connectors.bigquery_connector import (
    BigQueryConnector, WarehouseError, classify_statement, format_gb, to_json_safe,
    READ, WRITE, DDL, UNKNOWN,
)


class FakeJob:
    def __init__(self, rows=None, total_bytes=None, affected=None, error=None):
        self.rows = rows or []
        self.total_bytes_processed = total_bytes
        self.num_dml_affected_rows = affected
        self.error = error
        self.result_kwargs = None

    def result(self, **kwargs):
        self.result_kwargs = kwargs
        if self.error is not None:
            raise self.error
        limit = kwargs.get("max_results")
        return self.rows[:limit] if limit else self.rows


class FakeBigQueryClient:
    """Stands in for google.cloud.bigquery.Client."""

    def __init__(self, job=None, query_error=None):
        self.job = job or FakeJob()
        self.query_error = query_error
        self.queries = []

    def query(self, sql, job_config=None, project=None, location=None):
        self.queries.append({"sql": sql, "job_config": job_config, "project": project, "location": location})
        if self.query_error is not None:
            raise self.query_error
        return self.job

    def list_projects(self):
        return [SimpleNamespace(project_id="p1"), SimpleNamespace(project_id="p2")]

    def list_datasets(self, project=None):
        return [SimpleNamespace(dataset_id=f"{project}_ds")]

    def list_tables(self, dataset):
        return [SimpleNamespace(table_id="t1")]


@pytest.mark.parametrize("sql,expected", [
    ("SELECT 1", READ),
    ("  with t as (select 1) select * from t", READ),
    ("INSERT INTO t VALUES (1)", WRITE),
    ("update t set a = 1 where true", WRITE),
    ("DELETE FROM t WHERE true", WRITE),
    ("MERGE t USING s ON t.id = s.id WHEN MATCHED THEN DELETE", WRITE),
    ("CREATE TABLE t (a INT64)", DDL),
    ("drop table t", DDL),
    ("ALTER TABLE t ADD COLUMN b STRING", DDL),
    ("TRUNCATE TABLE t", DDL),
    ("-- top customers\nSELECT 1", READ),
    ("/* header\n comment */ INSERT INTO t VALUES (1)", WRITE),
    ("# bigquery comment\nselect 1", READ),
    ("GRANT SELECT ON t TO u", UNKNOWN),
    ("SELECTX 1", UNKNOWN),
    ("WITHDRAW 5", UNKNOWN),
    ("DROPPED_ROWS", UNKNOWN),
    ("SELECT\n1", READ),
    ("select(1)", READ),
    ("", UNKNOWN),
])
def test_classify_statement(sql, expected):
    assert classify_statement(sql) == expected


def test_format_gb():
    assert format_gb(0) == "0.00"
    assert format_gb(None) == "0.00"
    assert format_gb(1_234_567_890) == "1.23"


def test_validate_query_dry_run():
    client = FakeBigQueryClient(job=FakeJob(total_bytes=2_500_000_000))
    conn = BigQueryConnector(client=client, location="EU")
    res = conn.validate_query("SELECT * FROM orders", "acme", "sales")
    assert res.valid is True
    assert res.processing_gb == "2.50"
    assert res.message == "Query is valid"
    q = client.queries[0]
    assert q["project"] == "acme"
    assert q["location"] == "EU"
    cfg = q["job_config"]
    assert cfg.dry_run is True
    assert cfg.use_query_cache is False
    assert cfg.use_legacy_sql is False
    assert cfg.default_dataset.project == "acme"
    assert cfg.default_dataset.dataset_id == "sales"


def test_validate_query_rejected_by_warehouse():
    err = gexc.BadRequest("Syntax error: Unexpected keyword FORM at [1:10]")
    conn = BigQueryConnector(client=FakeBigQueryClient(query_error=err))
    res = conn.validate_query("SELECT * FORM orders", "acme", "sales")
    assert res.valid is False
    assert res.processing_gb == "0"
    assert "Unexpected keyword FORM" in res.message


def test_validate_empty_sql_skips_warehouse():
    client = FakeBigQueryClient()
    conn = BigQueryConnector(client=client)
    res = conn.validate_query("   ", "acme", "sales")
    assert res.valid is False
    assert res.message == "Empty SQL query"
    assert client.queries == []


def test_execute_read_returns_json_safe_rows():
    rows = [
        {"day": datetime.date(2025, 1, 2), "amount": decimal.Decimal("12.50"), "n": 3},
        {"day": datetime.date(2025, 1, 3), "amount": None, "n": 4},
    ]
    client = FakeBigQueryClient(job=FakeJob(rows=rows))
    conn = BigQueryConnector(client=client, max_result_rows=100)
    res = conn.execute_query("SELECT day, amount, n FROM t", "acme", "sales")
    assert res.operation == READ
    assert res.rows == [
        {"day": "2025-01-02", "amount": "12.50", "n": 3},
        {"day": "2025-01-03", "amount": None, "n": 4},
    ]
    assert res.affected_rows == 0
    assert client.job.result_kwargs == {"max_results": 100}
    assert client.queries[0]["job_config"].dry_run in (None, False)


def test_execute_write_returns_affected_rows():
    client = FakeBigQueryClient(job=FakeJob(affected=12))
    res = BigQueryConnector(client=client).execute_query("UPDATE t SET a = 1 WHERE true", "acme", "sales")
    assert res.operation == WRITE
    assert res.affected_rows == 12
    assert res.rows == []


def test_execute_ddl_without_dml_stats():
    client = FakeBigQueryClient(job=FakeJob(affected=None))
    res = BigQueryConnector(client=client).execute_query("CREATE TABLE t2 (a INT64)", "acme", "sales")
    assert res.operation == DDL
    assert res.affected_rows == 0


def test_execute_unknown_statement_raises_before_query():
    client = FakeBigQueryClient()
    with pytest.raises(ValueError):
        BigQueryConnector(client=client).execute_query("CALL proc()", "acme", "sales")
    assert client.queries == []


def test_execute_job_failure_raises_warehouse_error():
    job = FakeJob(error=gexc.Forbidden("Access Denied: Table acme:sales.t"))
    conn = BigQueryConnector(client=FakeBigQueryClient(job=job))
    with pytest.raises(WarehouseError, match="Access Denied"):
        conn.execute_query("SELECT * FROM t", "acme", "sales")


def test_metadata_listing():
    conn = BigQueryConnector(client=FakeBigQueryClient())
    assert conn.list_projects() == ["p1", "p2"]
    assert conn.list_datasets("acme") == ["acme_ds"]
    assert conn.list_tables("acme", "sales") == ["t1"]


def test_to_json_safe_nested_values():
    value = {
        "ts": datetime.datetime(2025, 1, 2, 3, 4, 5),
        "blob": b"\x00\x01",
        "tags": ("a", "b"),
        "nested": {"f": float("nan"), "ok": 1.5},
    }
    assert to_json_safe(value) == {
        "ts": "2025-01-02T03:04:05",
        "blob": base64.b64encode(b"\x00\x01").decode("ascii"),
        "tags": ["a", "b"],
        "nested": {"f": None, "ok": 1.5},
    }
