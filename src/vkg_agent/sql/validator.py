"""
Offline SQL validation

Fast, deterministic checks of generated SQL before it reaches the engine:
read-only statement shape, balanced parentheses, and every table/column
reference (qualified or bare) present in the resolved mapping set. Unknown
identifiers are hard errors so the retry loop can feed a precise message
back to the model.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from vkg_agent.ontology.models import MappingSet
from vkg_agent.sql.inspection import RegexSQLInspector, SQLInspector, strip_literals, unqualified_columns

FORBIDDEN_PATTERNS = [
    re.compile(r"\b(CREATE|DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|GRANT|REVOKE|MERGE)\b", re.I),
    re.compile(r"\bINTO\s+OUTFILE\b", re.I),
    re.compile(r"\bLOAD\s+DATA\b", re.I),
    re.compile(r";\s*\w"),  # multiple statements
]

_TWO_PART_TABLE = re.compile(r"\b(?:FROM|JOIN)\s+(\w+\.\w+)(?![\w.])", re.I)


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sql: str = ""


def _balanced(text: str) -> bool:
    depth = 0
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if depth < 0:
            return False
    return depth == 0


class SQLValidator:
    """Static validator over a resolved MappingSet."""

    def __init__(self, inspector: Optional[SQLInspector] = None, max_columns_in_error: int = 30):
        self.inspector = inspector or RegexSQLInspector()
        self.max_columns_in_error = max_columns_in_error

    def validate(self, sql: str, mappings: Optional[MappingSet] = None) -> ValidationResult:
        if not sql or not sql.strip():
            return ValidationResult(valid=False, errors=["Empty SQL query"])

        trimmed = sql.strip()
        text = strip_literals(trimmed)
        errors: List[str] = []
        warnings: List[str] = []

        if not re.match(r"^\s*(SELECT|WITH)\b", text, re.I):
            errors.append("Only SELECT queries are allowed. Query must start with SELECT or WITH.")

        for pattern in FORBIDDEN_PATTERNS:
            if pattern.search(text):
                errors.append(f"Forbidden SQL pattern detected: {pattern.pattern}")

        if not _balanced(text):
            errors.append("Unbalanced parentheses in SQL query")

        if re.search(r"SELECT\s+\*\s+FROM", text, re.I) and not re.search(r"\bLIMIT\b", text, re.I):
            warnings.append("SELECT * without LIMIT may return excessive data. Consider adding LIMIT.")

        for match in _TWO_PART_TABLE.finditer(text):
            warnings.append(
                f'Table "{match.group(1)}" may be missing catalog prefix. '
                f"Trino requires catalog.schema.table format."
            )

        if mappings is not None and not mappings.is_empty:
            errors.extend(self._check_identifiers(trimmed, mappings))

        # Preserve order, drop repeats
        errors = list(dict.fromkeys(errors))
        warnings = list(dict.fromkeys(warnings))
        if errors:
            logger.warning(f"SQL validation failed: {errors}")
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings, sql=trimmed)

    def _check_identifiers(self, sql: str, mappings: MappingSet) -> List[str]:
        errors = []
        known_tables = mappings.mapped_tables()
        columns_by_table = mappings.columns_by_table()
        ctes = self.inspector.cte_names(sql)

        for table in self.inspector.referenced_tables(sql):
            if table.lower() in ctes:
                continue
            if table.lower() not in known_tables:
                errors.append(
                    f"Unknown table reference: {table}. "
                    f"Use one of the mapped tables: {', '.join(sorted(known_tables))}"
                )

        aliases = self.inspector.table_aliases(sql)
        for qualifier, column in self.inspector.column_references(sql):
            table = aliases.get(qualifier.lower())
            if not table:
                continue
            known_columns = columns_by_table.get(table.lower())
            if known_columns is None:
                continue
            if column.lower() not in known_columns:
                available = ", ".join(sorted(known_columns)[: self.max_columns_in_error])
                errors.append(
                    f'Column "{column}" does not exist in table {table} '
                    f"(referenced as {qualifier}.{column}). Available columns: {available}"
                )

        for tables, column in unqualified_columns(sql):
            known = [columns_by_table.get(table.lower()) for table in tables]
            if any(columns is None for columns in known):
                continue
            if any(column.lower() in columns for columns in known):
                continue
            if len(tables) == 1:
                available = ", ".join(sorted(known[0])[: self.max_columns_in_error])
                errors.append(
                    f'Column "{column}" does not exist in table {tables[0]}. Available columns: {available}'
                )
            else:
                errors.append(f'Column "{column}" does not exist in any of: {", ".join(tables)}')
        return errors
