# querypilot/processors/summarizer.py
from typing import Any

from querypilot.processors.sql_generator import call_llm

SUMMARY_SYSTEM_PROMPT = """
You are an independent SQL reviewer. Analyze the SQL query provided and explain in simple terms what it does.
Your explanation should be clear, concise, and understandable by non-technical users.
Include what tables are being queried, what data is being retrieved, and any filters or calculations being applied.
Format your response in markdown with bullet points for clarity.
"""

SUMMARY_USER_PROMPT_TEMPLATE = "Analyze this BigQuery SQL: {sql}\nProject: {project_id}, Dataset: {dataset}"


def summarize_sql(llm: Any, sql: str, project_id: str, dataset: str) -> str:
    """Plain-language explanation of `sql` (markdown)."""
    user = SUMMARY_USER_PROMPT_TEMPLATE.format(sql=sql, project_id=project_id, dataset=dataset)
    resp = call_llm(llm, SUMMARY_SYSTEM_PROMPT, user, role="summarizer")
    return (resp.get("text") or "").strip()
