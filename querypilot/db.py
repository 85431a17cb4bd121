# querypilot/db.py
import datetime
from typing import List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker, declarative_base

from querypilot import monitoring
from querypilot.schemas import QueryRecord
from querypilot.store import clean_updates, utcnow

Base = declarative_base()


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def _to_record(row) -> QueryRecord:
    created_at = row.created_at
    # SQLite drops the offset; stored values are always UTC
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=datetime.timezone.utc)
    return QueryRecord(
        id=row.id,
        prompt=row.prompt,
        sql=row.sql,
        project_id=row.project_id,
        dataset=row.dataset,
        processing_gb=row.processing_gb,
        summary=row.summary,
        results=row.results,
        created_at=created_at,
    )


class SqlQueryStore:
    """Query history in a SQL database (same surface as MemoryQueryStore)."""

    def __init__(self, url: str):
        # import models lazily so Base metadata has the table
        import querypilot.models  # noqa: F401
        self.engine = _make_engine(url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine,
                                         expire_on_commit=False)
        Base.metadata.create_all(bind=self.engine)
        monitoring.logger.info("Query history database ready", extra={"dialect": self.engine.dialect.name})

    def create(self, prompt: str, sql: str, project_id: str, dataset: str,
               processing_gb: Optional[str] = None, summary: Optional[str] = None,
               results: Optional[list] = None) -> QueryRecord:
        from querypilot.models import QueryRow
        with self.SessionLocal() as db:
            row = QueryRow(
                prompt=prompt,
                sql=sql,
                project_id=project_id,
                dataset=dataset,
                processing_gb=processing_gb,
                summary=summary,
                results=results,
                created_at=utcnow(),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_record(row)

    def get(self, query_id: int) -> Optional[QueryRecord]:
        from querypilot.models import QueryRow
        with self.SessionLocal() as db:
            row = db.get(QueryRow, query_id)
            return _to_record(row) if row else None

    def list(self) -> List[QueryRecord]:
        from querypilot.models import QueryRow
        with self.SessionLocal() as db:
            rows = db.scalars(
                select(QueryRow).order_by(QueryRow.created_at.desc(), QueryRow.id.desc())
            ).all()
            return [_to_record(r) for r in rows]

    def update(self, query_id: int, **fields) -> Optional[QueryRecord]:
        from querypilot.models import QueryRow
        updates = clean_updates(fields)
        with self.SessionLocal() as db:
            row = db.get(QueryRow, query_id)
            if row is None:
                return None
            for k, v in updates.items():
                setattr(row, k, v)
            db.commit()
            db.refresh(row)
            return _to_record(row)

    def close(self):
        self.engine.dispose()
