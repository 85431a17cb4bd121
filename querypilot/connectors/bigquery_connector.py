# querypilot/connectors/bigquery_connector.py
import base64
import datetime
import decimal
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gexc
from google.cloud import bigquery
from google.oauth2 import service_account

from querypilot import monitoring
from querypilot.settings import Settings

# Statement classes
READ = "READ"
WRITE = "WRITE"
DDL = "DDL"
UNKNOWN = "UNKNOWN"

_READ_RE = re.compile(r"(?:SELECT|WITH)\b")
_WRITE_RE = re.compile(r"(?:INSERT|UPDATE|DELETE|MERGE)\b")
_DDL_RE = re.compile(r"(?:CREATE|DROP|ALTER|TRUNCATE)\b")

_LEADING_NOISE_RE = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|#[^\n]*(?:\n|$)|/\*.*?\*/)+", re.S)


class WarehouseError(RuntimeError):
    """Raised when the warehouse fails to run a statement."""


@dataclass
class ValidationResult:
    valid: bool
    processing_gb: str
    message: str
    total_bytes: int = 0


@dataclass
class ExecutionResult:
    operation: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    affected_rows: int = 0


def classify_statement(sql: str) -> str:
    """READ / WRITE / DDL / UNKNOWN from the leading keyword (comments and whitespace skipped)."""
    head = _LEADING_NOISE_RE.sub("", sql or "", count=1).upper()
    if _READ_RE.match(head):
        return READ
    if _WRITE_RE.match(head):
        return WRITE
    if _DDL_RE.match(head):
        return DDL
    return UNKNOWN


def format_gb(total_bytes: Optional[int]) -> str:
    return f"{(total_bytes or 0) / 1e9:.2f}"


def to_json_safe(value: Any) -> Any:
    """Convert BigQuery cell values into JSON-serialisable primitives."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        # NaN / inf are not valid JSON
        return value if value == value and value not in (float("inf"), float("-inf")) else None
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return str(value)


def _row_to_dict(row: Any) -> Dict[str, Any]:
    return {k: to_json_safe(v) for k, v in row.items()}


class BigQueryConnector:
    """
    Dry-run validation, execution and metadata listing against BigQuery.

    The google client is created on first use; tests pass `client` directly.
    """

    def __init__(self, credentials_json: str = "", location: Optional[str] = None,
                 max_result_rows: int = 10000, client: Any = None):
        self.credentials_json = credentials_json
        self.location = location
        self.max_result_rows = max_result_rows
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "BigQueryConnector":
        return cls(
            credentials_json=settings.google_credentials_json,
            location=settings.bigquery_location,
            max_result_rows=settings.max_result_rows,
        )

    @property
    def client(self):
        if self._client is None:
            if self.credentials_json:
                info = json.loads(self.credentials_json)
                creds = service_account.Credentials.from_service_account_info(info)
                self._client = bigquery.Client(credentials=creds, project=info.get("project_id"))
            else:
                self._client = bigquery.Client()
        return self._client

    def close(self):
        if self._client is not None and hasattr(self._client, "close"):
            self._client.close()

    def _job_config(self, dataset: str, project_id: str, **kwargs) -> bigquery.QueryJobConfig:
        return bigquery.QueryJobConfig(
            default_dataset=f"{project_id}.{dataset}",
            use_legacy_sql=False,
            **kwargs
        )

    # ------------------------------------------------------------------
    # Validation (dry run)
    # ------------------------------------------------------------------
    def validate_query(self, sql: str, project_id: str, dataset: str) -> ValidationResult:
        """
        Dry-run `sql`. Warehouse rejections come back as valid=False with the
        warehouse message; credential/transport problems propagate.
        """
        if not sql or not sql.strip():
            return ValidationResult(valid=False, processing_gb="0", message="Empty SQL query")
        config = self._job_config(dataset, project_id, dry_run=True, use_query_cache=False)
        try:
            job = self.client.query(sql, job_config=config, project=project_id, location=self.location)
        except gexc.GoogleAPICallError as e:
            monitoring.inc_warehouse_call("dry_run", "invalid")
            monitoring.logger.info("Dry run rejected query", extra={"project_id": project_id, "error": e.message})
            return ValidationResult(valid=False, processing_gb="0", message=e.message or "Invalid query")
        monitoring.inc_warehouse_call("dry_run", "valid")
        total = int(job.total_bytes_processed or 0)
        return ValidationResult(valid=True, processing_gb=format_gb(total), message="Query is valid", total_bytes=total)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def execute_query(self, sql: str, project_id: str, dataset: str) -> ExecutionResult:
        """
        Run `sql`. READ statements return rows (capped at max_result_rows);
        WRITE/DDL statements return the DML affected row count.
        Raises ValueError for unclassifiable statements and WarehouseError on job failure.
        """
        operation = classify_statement(sql)
        if operation == UNKNOWN:
            raise ValueError(
                "Unknown query type. Please use SELECT, INSERT, UPDATE, DELETE, or CREATE/ALTER/DROP statements."
            )
        config = self._job_config(dataset, project_id)
        try:
            job = self.client.query(sql, job_config=config, project=project_id, location=self.location)
            if operation == READ:
                result = job.result(max_results=self.max_result_rows)
                rows = [_row_to_dict(r) for r in result]
                monitoring.inc_warehouse_call("execute_read", "success")
                monitoring.set_last_result_rows(len(rows))
                return ExecutionResult(operation=operation, rows=rows)
            job.result()
            affected = int(job.num_dml_affected_rows or 0)
        except gexc.GoogleAPICallError as e:
            monitoring.inc_warehouse_call(f"execute_{operation.lower()}", "fail")
            raise WarehouseError(e.message or str(e)) from e
        monitoring.inc_warehouse_call(f"execute_{operation.lower()}", "success")
        return ExecutionResult(operation=operation, affected_rows=affected)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def list_projects(self) -> List[str]:
        return [p.project_id for p in self.client.list_projects()]

    def list_datasets(self, project_id: str) -> List[str]:
        return [d.dataset_id for d in self.client.list_datasets(project=project_id)]

    def list_tables(self, project_id: str, dataset: str) -> List[str]:
        return [t.table_id for t in self.client.list_tables(f"{project_id}.{dataset}")]
