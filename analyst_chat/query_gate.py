"""Textual safety gate for the analytics database tool.

This is a substring heuristic, not a SQL parser. A WHERE that appears in an
unrelated sub-expression satisfies the DELETE/UPDATE check, and deny-list
keywords are matched anywhere in the statement, including inside literals.
"""

import re
from dataclasses import dataclass
from typing import Optional

ALLOWED_OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE")
FILTERED_OPERATIONS = ("DELETE", "UPDATE")
PROTECTED_TABLES = (
    "analytics_users",
    "sales",
    "user_events",
    "product_performance",
    "marketing_campaigns",
)
FORBIDDEN_KEYWORDS = (
    "DROP",
    "TRUNCATE",
    "ALTER TABLE",
    "CREATE INDEX",
    "DROP INDEX",
    "GRANT",
    "REVOKE",
)
# "DELETE FROM <table>" with nothing after it but an optional semicolon.
_BULK_DELETE_RE = re.compile(
    r"\bDELETE\s+FROM\s+(" + "|".join(t.upper() for t in PROTECTED_TABLES) + r")\s*;?\s*$"
)
_FIRST_TOKEN_RE = re.compile(r"^([A-Z]+)")
_LIMIT_RE = re.compile(r"\bLIMIT\s+\d+", re.IGNORECASE)

SAFETY_SUGGESTION = "Please modify your query to comply with safety requirements"


@dataclass(frozen=True)
class QueryValidation:
    valid: bool
    reason: Optional[str] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "reason": self.reason, "suggestion": self.suggestion}


def _reject(reason: str) -> QueryValidation:
    return QueryValidation(valid=False, reason=reason, suggestion=SAFETY_SUGGESTION)


def validate_query(query: str) -> QueryValidation:
    upper = (query or "").upper().strip()
    match = _FIRST_TOKEN_RE.match(upper)
    operation = match.group(1) if match else ""
    if operation not in ALLOWED_OPERATIONS:
        return _reject(f"Query must start with one of: {', '.join(ALLOWED_OPERATIONS)}")
    if operation in FILTERED_OPERATIONS and "WHERE" not in upper:
        return _reject(f"{operation} operations must include a WHERE clause")
    for keyword in FORBIDDEN_KEYWORDS:
        if keyword in upper:
            return _reject(f"Operation '{keyword}' is not allowed for security reasons")
    bulk = _BULK_DELETE_RE.search(upper)
    if bulk:
        return _reject(f"Operation 'DELETE FROM {bulk.group(1).lower()}' is not allowed for security reasons")
    return QueryValidation(valid=True)


def apply_row_ceiling(query: str, ceiling: int) -> str:
    """Append ``LIMIT <ceiling>`` to a SELECT that carries no explicit limit."""
    stripped = query.strip().rstrip(";").rstrip()
    if not stripped.upper().startswith("SELECT"):
        return stripped
    if _LIMIT_RE.search(stripped):
        return stripped
    return f"{stripped} LIMIT {int(ceiling)}"
