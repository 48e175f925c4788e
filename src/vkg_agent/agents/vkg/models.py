"""
VKG agent models - query plan, pipeline steps, attempt records
"""

import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

FALLBACK_REASONING = "Fallback: could not parse combined JSON"


@dataclass
class QueryPlan:
    """Execution plan the model returns next to the SQL."""
    entities: List[str] = field(default_factory=list)
    relationships: List[str] = field(default_factory=list)
    single_hop: bool = True
    aggregation: Optional[str] = None
    reasoning: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QueryPlan":
        data = data or {}
        single_hop = data.get("singleHop", data.get("single_hop", True))
        return cls(
            entities=[str(e) for e in data.get("entities") or []],
            relationships=[str(r) for r in data.get("relationships") or []],
            single_hop=bool(single_hop),
            aggregation=data.get("aggregation") or None,
            reasoning=str(data.get("reasoning") or ""),
        )

    @classmethod
    def fallback(cls) -> "QueryPlan":
        return cls(reasoning=FALLBACK_REASONING)

    def to_dict(self) -> Dict[str, Any]:
        plan = {
            "entities": list(self.entities),
            "relationships": list(self.relationships),
            "singleHop": self.single_hop,
            "reasoning": self.reasoning,
        }
        if self.aggregation:
            plan["aggregation"] = self.aggregation
        return plan


@dataclass
class PipelineStep:
    name: str
    duration_ms: int
    status: str  # success | failed | skipped
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        step = {"name": self.name, "duration_ms": self.duration_ms, "status": self.status}
        if self.error:
            step["error"] = self.error
        return step


@dataclass(frozen=True)
class AttemptRecord:
    """
    One failed generate -> validate -> execute attempt.

    `error_feedback` is the corrective message sent back to the model on the
    next attempt; `plan`/`sql` are what the model produced (empty when
    generation itself failed).
    """
    attempt_number: int
    stage: str  # generation | validation | execution
    error: str
    error_feedback: str
    plan: Optional[Dict[str, Any]] = None
    sql: str = ""

    def feedback_messages(self) -> List[Dict[str, str]]:
        messages = []
        if self.sql:
            messages.append({"role": "assistant", "content": json.dumps({"plan": self.plan or {}, "sql": self.sql})})
        messages.append({"role": "user", "content": self.error_feedback})
        return messages

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def attempt_tag(attempt: int, max_attempts: int) -> str:
    """Suffix for step names after the first attempt: ' (attempt 2/3)'."""
    if max_attempts > 1 and attempt > 1:
        return f" (attempt {attempt}/{max_attempts})"
    return ""


def generation_feedback(error: str) -> str:
    return (
        f"Your previous response could not be used: {error}\n\n"
        f'Return ONLY a JSON object with a "plan" and a non-empty "sql" field.'
    )


def validation_feedback(error: str) -> str:
    return (
        f"The SQL you generated has WRONG COLUMN NAMES: {error}\n\n"
        f"You MUST use ONLY the exact column names from the SQL COLUMNS section and COLUMN DICTIONARY. "
        f"Do NOT invent column names from ontology property names. Fix the SQL and return corrected JSON."
    )


def execution_feedback(error: str) -> str:
    return (
        f"The SQL you generated failed on Trino with error: {error}\n\n"
        f"Please fix the SQL and return the corrected JSON. Remember: all table references must use "
        f"fully-qualified 3-part names (catalog.schema.table) exactly as shown in the TABLE MAPPINGS."
    )


def feedback_history(attempts: List[AttemptRecord]) -> List[Dict[str, str]]:
    """Chat turns replaying every earlier failure, oldest first."""
    messages: List[Dict[str, str]] = []
    for record in attempts:
        messages.extend(record.feedback_messages())
    return messages
