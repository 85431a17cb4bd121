# querypilot/models.py
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON

from querypilot.db import Base


class QueryRow(Base):
    __tablename__ = "queries"
    # never reuse ids of the highest row
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    prompt = Column(Text, nullable=False)
    sql = Column(Text, nullable=False)
    project_id = Column(String(256), nullable=False)
    dataset = Column(String(256), nullable=False)
    processing_gb = Column(String(32), nullable=True)
    summary = Column(Text, nullable=True)
    results = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
