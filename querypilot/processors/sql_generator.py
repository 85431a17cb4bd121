# querypilot/processors/sql_generator.py
import re
import time
from typing import Any, Dict

from querypilot import monitoring

GENERATE_SYSTEM_PROMPT = """
You are an expert SQL assistant for Google BigQuery. Generate SQL based on the user's request.
The SQL must be valid BigQuery Standard SQL and optimized for performance.
Qualify table names as `project.dataset.table` using the project and dataset given by the user.
Return ONLY the SQL code. DO NOT add any explanation or markdown.
"""

GENERATE_USER_PROMPT_TEMPLATE = (
    'Generate BigQuery SQL for: {prompt}\n'
    'The project is "{project_id}" and the dataset is "{dataset}".'
)

REPAIR_SYSTEM_PROMPT = """
You are an expert SQL assistant for Google BigQuery. Fix the SQL query you are given so that it runs without errors.
Keep the intent of the original query. Return ONLY the corrected SQL code, with no explanation or markdown.
"""

REPAIR_USER_PROMPT_TEMPLATE = (
    'The following SQL query has this error: {error}\n'
    'The project is "{project_id}" and the dataset is "{dataset}".\n'
    'Please fix it:\n{sql}'
)

_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n(.*?)\n?```$", re.S)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown fence (```sql ... ```) if the model added one."""
    s = (text or "").strip()
    m = _FENCE_RE.match(s)
    if m:
        return m.group(1).strip()
    if s.startswith("```") and s.endswith("```"):
        return s.strip("`").strip()
    return s


def call_llm(llm: Any, system: str, user: str, role: str) -> Dict[str, Any]:
    """Single chat call with latency/outcome metrics. Errors propagate."""
    start = time.time()
    try:
        resp = llm.chat(messages=[
            {"role": "system", "content": system.strip()},
            {"role": "user", "content": user},
        ])
    except Exception:
        monitoring.observe_llm_call(start, role, "fail")
        raise
    monitoring.observe_llm_call(start, role, "success")
    monitoring.logger.debug("LLM call completed", extra={
        "role": role, "model": resp.get("model"), "response_id": resp.get("response_id"),
    })
    return resp


def generate_sql(llm: Any, prompt: str, project_id: str, dataset: str) -> str:
    """Ask the LLM for BigQuery SQL answering `prompt`. Returns the bare SQL text."""
    user = GENERATE_USER_PROMPT_TEMPLATE.format(prompt=prompt, project_id=project_id, dataset=dataset)
    resp = call_llm(llm, GENERATE_SYSTEM_PROMPT, user, role="sql_generator")
    return strip_code_fences(resp.get("text", ""))


def repair_sql(llm: Any, sql: str, error: str, project_id: str, dataset: str) -> str:
    """Ask the LLM to correct `sql` given the warehouse error message."""
    user = REPAIR_USER_PROMPT_TEMPLATE.format(error=error, project_id=project_id, dataset=dataset, sql=sql)
    resp = call_llm(llm, REPAIR_SYSTEM_PROMPT, user, role="sql_repair")
    return strip_code_fences(resp.get("text", ""))
