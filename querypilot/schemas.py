# querypilot/schemas.py
import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _required(value: str, label: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{label} is required")
    return value


class QueryRecord(BaseModel):
    """Stored query: serialised with camelCase keys (projectId, processingGb, createdAt)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    prompt: str
    sql: str
    project_id: str
    dataset: str
    processing_gb: Optional[str] = None
    summary: Optional[str] = None
    results: Optional[List[Dict[str, Any]]] = None
    created_at: datetime.datetime

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class _SourceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(..., alias="projectId")
    dataset: str

    @field_validator("project_id")
    @classmethod
    def project_required(cls, v):
        return _required(v, "Project ID")

    @field_validator("dataset")
    @classmethod
    def dataset_required(cls, v):
        return _required(v, "Dataset")


class PromptRequest(_SourceRequest):
    prompt: str

    @field_validator("prompt")
    @classmethod
    def prompt_required(cls, v):
        return _required(v, "Prompt")


class SqlRequest(_SourceRequest):
    """Body shared by validate / summarize / execute."""
    sql: str
    query_id: Optional[int] = Field(None, alias="queryId")

    @field_validator("sql")
    @classmethod
    def sql_required(cls, v):
        return _required(v, "SQL")


class ExportRequest(BaseModel):
    results: List[Dict[str, Any]]
    delimiter: str = Field(",", min_length=1, max_length=1)
