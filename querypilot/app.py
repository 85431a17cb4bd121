# querypilot/app.py
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

# Load .env BEFORE building settings (they are read from the environment)
from dotenv import load_dotenv
load_dotenv(override=True)

from fastapi import Depends, FastAPI, Request, Path, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, PlainTextResponse

from querypilot import monitoring
from querypilot.connectors.bigquery_connector import BigQueryConnector
from querypilot.export import rows_to_csv
from querypilot.llm_wrapper import LLMClient
from querypilot.orchestrator import (
    QueryWorkflow, InvalidRequestError, E_BAD_REQUEST, E_NOT_FOUND, E_INTERNAL,
)
from querypilot.schemas import PromptRequest, SqlRequest, ExportRequest
from querypilot.settings import Settings
from querypilot.store import make_query_store

CSV_FILENAME = "query_results.csv"


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------
def _client_error(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"status": "error", "error_code": E_BAD_REQUEST, "message": message},
    )


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"status": "error", "error_code": E_NOT_FOUND, "message": message},
    )


def _server_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"status": "error", "error_code": E_INTERNAL, "message": "Internal server error"},
    )


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query")]
        parts.append(f'{msg} at "{".".join(loc)}"' if loc else msg)
    return "Validation error: " + "; ".join(parts)


def _run(endpoint: str, fn: Callable[[], Any]):
    """
    Run a workflow call, mapping request-shape errors to 400 and anything else
    to 500. Plain values are sent as JSON; a ready Response is passed through.
    """
    try:
        result = fn()
        if isinstance(result, Response):
            return result
        return JSONResponse(status_code=200, content=result)
    except InvalidRequestError as e:
        monitoring.logger.info("Rejected request", extra={"endpoint": endpoint, "reason": str(e)})
        return _client_error(str(e))
    except Exception:
        monitoring.logger.exception(f"Unexpected error in {endpoint} handler")
        return _server_error()


def _route_label(request: Request) -> str:
    # route templates keep the metric label set bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def get_workflow(request: Request) -> QueryWorkflow:
    return request.app.state.workflow


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(settings: Optional[Settings] = None, llm: Any = None,
               warehouse: Any = None, store: Any = None) -> FastAPI:
    """
    Build the API. Dependencies that are not injected are built from settings
    when the app starts and closed when it shuts down.
    """
    settings = settings or Settings.from_env()
    monitoring.configure(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = []
        wf_llm = llm
        if wf_llm is None:
            wf_llm = LLMClient.from_settings(settings)
            owned.append(wf_llm)
        wf_warehouse = warehouse
        if wf_warehouse is None:
            wf_warehouse = BigQueryConnector.from_settings(settings)
            owned.append(wf_warehouse)
        wf_store = store
        if wf_store is None:
            wf_store = make_query_store(settings)
            owned.append(wf_store)
        app.state.workflow = QueryWorkflow(llm=wf_llm, warehouse=wf_warehouse, store=wf_store)
        monitoring.logger.info("QueryPilot started", extra={
            "llm_provider": getattr(wf_llm, "provider", None),
            "store": type(wf_store).__name__,
        })
        yield
        for resource in owned:
            resource.close()

    app = FastAPI(title="QueryPilot API", lifespan=lifespan)
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _client_error(_describe_validation_error(exc))

    # -----------------------------------------------------------------------
    # Metrics middleware
    # -----------------------------------------------------------------------
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        method = request.method
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        except Exception:
            monitoring.logger.exception("Unhandled exception in request", extra={"path": request.url.path})
            raise
        finally:
            monitoring.observe_request(start, _route_label(request), method, status)

    # -----------------------------------------------------------------------
    # Workflow endpoints
    # -----------------------------------------------------------------------
    @app.post("/api/generate-sql")
    def generate_sql(req: PromptRequest, workflow: QueryWorkflow = Depends(get_workflow)):
        """
        POST /api/generate-sql
        Body: { "prompt": "...", "projectId": "...", "dataset": "..." }
        """
        monitoring.logger.info("Received /api/generate-sql request", extra={"prompt_preview": req.prompt[:200]})
        return _run("/api/generate-sql", lambda: workflow.generate(req.prompt, req.project_id, req.dataset))

    @app.post("/api/validate-sql")
    def validate_sql(req: SqlRequest, workflow: QueryWorkflow = Depends(get_workflow)):
        return _run("/api/validate-sql", lambda: workflow.validate(
            req.sql, req.project_id, req.dataset, query_id=req.query_id))

    @app.post("/api/generate-summary")
    def generate_summary(req: SqlRequest, workflow: QueryWorkflow = Depends(get_workflow)):
        return _run("/api/generate-summary", lambda: workflow.summarize(
            req.sql, req.project_id, req.dataset, query_id=req.query_id))

    @app.post("/api/execute-sql")
    def execute_sql(req: SqlRequest, workflow: QueryWorkflow = Depends(get_workflow)):
        """
        READ statements return {"operation": "READ", "results": [...]};
        WRITE/DDL return {"operation", "affectedRows", "message"}.
        """
        return _run("/api/execute-sql", lambda: workflow.execute(
            req.sql, req.project_id, req.dataset, query_id=req.query_id))

    # -----------------------------------------------------------------------
    # History
    # -----------------------------------------------------------------------
    @app.get("/api/query-history")
    def query_history(workflow: QueryWorkflow = Depends(get_workflow)):
        return _run("/api/query-history", lambda: {"queries": workflow.history()})

    @app.get("/api/query-history/{query_id}")
    def query_history_item(query_id: int = Path(..., description="Query ID to fetch"),
                           workflow: QueryWorkflow = Depends(get_workflow)):
        def fetch():
            rec = workflow.get_record(query_id)
            if rec is None:
                return _not_found(f"Query {query_id} not found")
            return rec
        return _run("/api/query-history/{query_id}", fetch)

    @app.get("/api/query-history/{query_id}/results.csv")
    def query_history_csv(query_id: int = Path(..., description="Query ID to export"),
                          delimiter: str = Query(",", min_length=1, max_length=1),
                          workflow: QueryWorkflow = Depends(get_workflow)):
        def export():
            rows = workflow.get_results(query_id)
            if rows is None:
                return _not_found(f"Query {query_id} not found")
            return _csv_response(rows_to_csv(rows, delimiter=delimiter))
        return _run("/api/query-history/{query_id}/results.csv", export)

    @app.post("/api/export-csv")
    def export_csv(req: ExportRequest):
        return _run("/api/export-csv",
                    lambda: _csv_response(rows_to_csv(req.results, delimiter=req.delimiter)))

    # -----------------------------------------------------------------------
    # Warehouse metadata
    # -----------------------------------------------------------------------
    @app.get("/api/bigquery/projects")
    def bigquery_projects(workflow: QueryWorkflow = Depends(get_workflow)):
        return _run("/api/bigquery/projects", lambda: {"projects": workflow.projects()})

    @app.get("/api/bigquery/datasets")
    def bigquery_datasets(projectId: Optional[str] = None,
                          workflow: QueryWorkflow = Depends(get_workflow)):
        return _run("/api/bigquery/datasets", lambda: {"datasets": workflow.datasets(projectId)})

    @app.get("/api/bigquery/tables")
    def bigquery_tables(projectId: Optional[str] = None, datasetId: Optional[str] = None,
                        workflow: QueryWorkflow = Depends(get_workflow)):
        return _run("/api/bigquery/tables", lambda: {"tables": workflow.tables(projectId, datasetId)})

    # -----------------------------------------------------------------------
    # Ops
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        if not settings.prometheus_enabled:
            return PlainTextResponse("Prometheus disabled", status_code=404)
        payload, content_type = monitoring.prometheus_metrics_response()
        return Response(content=payload, media_type=content_type)

    return app


def _csv_response(body: str) -> Response:
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
    )


app = create_app()
