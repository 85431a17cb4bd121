# querypilot/orchestrator.py
from typing import Any, Dict, List, Optional

import querypilot.processors.sql_generator as _sql_generator
import querypilot.processors.summarizer as _summarizer
from querypilot.connectors.bigquery_connector import classify_statement, READ, UNKNOWN
from querypilot import monitoring

E_BAD_REQUEST = "E_BAD_REQUEST"
E_NOT_FOUND = "E_NOT_FOUND"
E_INTERNAL = "E_INTERNAL"


class InvalidRequestError(ValueError):
    """Request-shape problem detected before any external call."""


def _require(**values: Optional[str]):
    labels = {"prompt": "Prompt", "sql": "SQL", "project_id": "Project ID", "dataset": "Dataset"}
    for name, value in values.items():
        if value is None or not str(value).strip():
            raise InvalidRequestError(f"{labels.get(name, name)} is required")


class QueryWorkflow:
    """
    prompt -> generate -> validate -> summarize -> execute

    Each step checks its inputs, calls one external service (validate may call
    the LLM and the warehouse a second time), reshapes the result and updates
    the stored record when a query id is supplied.
    """

    def __init__(self, llm: Any, warehouse: Any, store: Any):
        self.llm = llm
        self.warehouse = warehouse
        self.store = store

    def _touch_record(self, query_id: Optional[int], **fields):
        if query_id is None:
            return
        if self.store.update(query_id, **fields) is None:
            monitoring.logger.warning("Query record not found for update", extra={"query_id": query_id})

    def generate(self, prompt: str, project_id: str, dataset: str) -> Dict[str, Any]:
        _require(prompt=prompt, project_id=project_id, dataset=dataset)
        sql = _sql_generator.generate_sql(self.llm, prompt, project_id, dataset)
        if not sql:
            raise RuntimeError("LLM returned an empty SQL statement")
        record = self.store.create(prompt=prompt, sql=sql, project_id=project_id, dataset=dataset)
        monitoring.logger.info("Generated SQL", extra={"query_id": record.id, "project_id": project_id})
        return {"id": record.id, "sql": record.sql}

    def validate(self, sql: str, project_id: str, dataset: str,
                 query_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Dry-run `sql`; on failure make exactly one LLM repair and dry-run the
        repaired text. `fixed` is true only if the repair changed the SQL and
        the new text validated.
        """
        _require(sql=sql, project_id=project_id, dataset=dataset)
        first = self.warehouse.validate_query(sql, project_id, dataset)
        if first.valid:
            self._touch_record(query_id, processing_gb=first.processing_gb)
            return {
                "valid": True,
                "processingGB": first.processing_gb,
                "message": first.message,
                "fixed": False,
            }

        monitoring.logger.info("Validation failed, attempting repair", extra={"error": first.message})
        repaired = _sql_generator.repair_sql(self.llm, sql, first.message, project_id, dataset)
        second = self.warehouse.validate_query(repaired, project_id, dataset)
        changed = bool(repaired) and repaired.strip() != sql.strip()
        fixed = changed and second.valid
        monitoring.inc_sql_repair("fixed" if fixed else "unfixed")

        resp: Dict[str, Any] = {
            "valid": second.valid,
            "processingGB": second.processing_gb,
            "message": second.message,
            "fixed": fixed,
        }
        if changed:
            resp["sql"] = repaired
        if fixed:
            self._touch_record(query_id, sql=repaired, processing_gb=second.processing_gb)
        return resp

    def summarize(self, sql: str, project_id: str, dataset: str,
                  query_id: Optional[int] = None) -> Dict[str, Any]:
        _require(sql=sql, project_id=project_id, dataset=dataset)
        summary = _summarizer.summarize_sql(self.llm, sql, project_id, dataset)
        self._touch_record(query_id, summary=summary)
        return {"summary": summary}

    def execute(self, sql: str, project_id: str, dataset: str,
                query_id: Optional[int] = None) -> Dict[str, Any]:
        _require(sql=sql, project_id=project_id, dataset=dataset)
        if classify_statement(sql) == UNKNOWN:
            raise InvalidRequestError(
                "Unknown query type. Please use SELECT, INSERT, UPDATE, DELETE, or CREATE/ALTER/DROP statements."
            )
        result = self.warehouse.execute_query(sql, project_id, dataset)
        if result.operation == READ:
            self._touch_record(query_id, results=result.rows)
            return {"operation": READ, "results": result.rows}
        return {
            "operation": result.operation,
            "affectedRows": result.affected_rows,
            "message": f"{result.operation} statement completed: {result.affected_rows} row(s) affected",
        }

    # warehouse metadata for the source pickers
    def projects(self) -> List[str]:
        return self.warehouse.list_projects()

    def datasets(self, project_id: Optional[str]) -> List[str]:
        _require(project_id=project_id)
        return self.warehouse.list_datasets(project_id)

    def tables(self, project_id: Optional[str], dataset: Optional[str]) -> List[str]:
        _require(project_id=project_id, dataset=dataset)
        return self.warehouse.list_tables(project_id, dataset)

    def history(self) -> List[Dict[str, Any]]:
        return [r.to_json() for r in self.store.list()]

    def get_record(self, query_id: int) -> Optional[Dict[str, Any]]:
        record = self.store.get(query_id)
        return record.to_json() if record else None

    def get_results(self, query_id: int) -> Optional[List[Dict[str, Any]]]:
        record = self.store.get(query_id)
        if record is None:
            return None
        return record.results or []
