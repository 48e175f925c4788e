"""
SQL inspection

Extracts table aliases, referenced tables, qualified column references and
WHERE-clause filter columns from generated SQL. The default implementation is
a regex heuristic, not a parser: filter conditions it cannot pattern-match
(function-wrapped comparisons, sub-selects, arithmetic) are silently skipped.
Callers depend only on the SQLInspector protocol. Bare (unqualified) column
names are resolved separately through sqlglot scopes in `unqualified_columns`.
"""

import re
from typing import Dict, List, Protocol, Set, Tuple

import sqlglot
from loguru import logger
from sqlglot import exp
from sqlglot.errors import SqlglotError
from sqlglot.optimizer.scope import traverse_scope

SQL_KEYWORDS = {
    "select", "from", "where", "join", "inner", "left", "right", "full", "cross", "outer",
    "on", "as", "and", "or", "not", "in", "is", "null", "like", "between", "group", "order",
    "by", "having", "limit", "offset", "union", "all", "distinct", "case", "when", "then",
    "else", "end", "with", "using", "natural", "lateral", "fetch", "except", "intersect",
    "window", "asc", "desc", "set", "values", "true", "false", "exists", "any", "some",
}

_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_LINE_COMMENT = re.compile(r"--[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.S)
_FROM_JOIN = re.compile(r"\b(?:FROM|JOIN)\s+([\w\"]+(?:\.[\w\"]+)*)(?:\s+(?:AS\s+)?(\w+))?", re.I)
_QUALIFIED_COLUMN = re.compile(r"(?<![\w.])([A-Za-z_]\w*)\.([A-Za-z_]\w*)(?![\w.(])")
_FOUR_PART_COLUMN = re.compile(r"(?<![\w.])(\w+\.\w+\.\w+)\.([A-Za-z_]\w*)(?![\w.(])")
_WHERE_CLAUSE = re.compile(r"\bWHERE\s+([\s\S]*?)(?:\bGROUP\s+BY\b|\bORDER\s+BY\b|\bLIMIT\b|$)", re.I)
_FILTER_COLUMN = re.compile(
    r"(?:LOWER\s*\(\s*)?(\w+)\.(\w+)\s*\)?\s*(?:=|!=|<>|>=|<=|>|<|\bLIKE\b|\bIN\b|\bBETWEEN\b|\bIS\b)",
    re.I,
)
_CTE_NAME = re.compile(r"(?:\bWITH|,)\s+(\w+)\s+AS\s*\(", re.I)
# EXTRACT(YEAR FROM x) is not a FROM clause
_EXTRACT_FROM = re.compile(r"\b(EXTRACT\s*\(\s*\w+)\s+FROM\b", re.I)


class SQLInspector(Protocol):
    def table_aliases(self, sql: str) -> Dict[str, str]: ...

    def referenced_tables(self, sql: str) -> List[str]: ...

    def column_references(self, sql: str) -> List[Tuple[str, str]]: ...

    def filter_columns(self, sql: str) -> List[Tuple[str, str]]: ...

    def cte_names(self, sql: str) -> Set[str]: ...


def strip_literals(sql: str) -> str:
    """Blank out string literals and comments so identifiers inside them are ignored."""
    text = _BLOCK_COMMENT.sub(" ", sql or "")
    text = _LINE_COMMENT.sub(" ", text)
    text = _STRING_LITERAL.sub("''", text)
    return _EXTRACT_FROM.sub(r"\1,", text)


class RegexSQLInspector:
    """Pattern-based SQLInspector."""

    def referenced_tables(self, sql: str) -> List[str]:
        """FROM/JOIN targets in order of appearance (sub-selects are skipped)."""
        seen = []
        for match in _FROM_JOIN.finditer(strip_literals(sql)):
            table = match.group(1).replace('"', "")
            if table.lower() in SQL_KEYWORDS:
                continue
            if table not in seen:
                seen.append(table)
        return seen

    def table_aliases(self, sql: str) -> Dict[str, str]:
        """
        alias -> table, lowercased aliases.

        A table is also reachable through its full name and its bare last
        segment, so `orders.total` resolves without an explicit alias.
        """
        aliases: Dict[str, str] = {}
        for match in _FROM_JOIN.finditer(strip_literals(sql)):
            table = match.group(1).replace('"', "")
            if table.lower() in SQL_KEYWORDS:
                continue
            aliases.setdefault(table.lower(), table)
            aliases.setdefault(table.split(".")[-1].lower(), table)
            alias = match.group(2)
            if alias and alias.lower() not in SQL_KEYWORDS:
                aliases[alias.lower()] = table
        return aliases

    def column_references(self, sql: str) -> List[Tuple[str, str]]:
        """
        (qualifier, column) pairs for `alias.column` and `catalog.schema.table.column`.

        Function calls (`x.y(`) and numeric literals are excluded.
        """
        text = strip_literals(sql)
        refs = [(m.group(1), m.group(2)) for m in _FOUR_PART_COLUMN.finditer(text)]
        remaining = _FOUR_PART_COLUMN.sub(" ", text)
        # Table names in FROM/JOIN look like qualifier.column; drop them first
        remaining = _FROM_JOIN.sub(" FROM ", remaining)
        refs.extend((m.group(1), m.group(2)) for m in _QUALIFIED_COLUMN.finditer(remaining))
        return refs

    def filter_columns(self, sql: str) -> List[Tuple[str, str]]:
        """Distinct (alias, column) pairs compared in the WHERE clause."""
        match = _WHERE_CLAUSE.search(strip_literals(sql))
        if not match:
            return []
        found: List[Tuple[str, str]] = []
        for alias, column in _FILTER_COLUMN.findall(match.group(1)):
            pair = (alias, column)
            if pair not in found:
                found.append(pair)
        return found

    def cte_names(self, sql: str) -> Set[str]:
        text = strip_literals(sql)
        if not re.match(r"^\s*WITH\b", text, re.I):
            return set()
        return {m.group(1).lower() for m in _CTE_NAME.finditer(text)}


def _table_name(table: exp.Table) -> str:
    return ".".join(part for part in (table.catalog, table.db, table.name) if part)


def unqualified_columns(sql: str, dialect: str = "trino") -> List[Tuple[List[str], str]]:
    """
    Bare column names paired with the tables they may come from.

    Parsed with sqlglot rather than the regex heuristic. A SELECT scope is
    considered only when every source in it is a plain table (scopes over
    sub-selects or CTE names are skipped), and SELECT-list aliases and `*` are
    ignored. SQL that does not parse yields no references.

    Example:
        unqualified_columns("SELECT name FROM a.b.customers WHERE city = 'x'")
        -> [(["a.b.customers"], "name"), (["a.b.customers"], "city")]
    """
    try:
        tree = sqlglot.parse_one(sql, read=dialect)
        scopes = traverse_scope(tree)
    except SqlglotError as e:
        logger.debug(f"Column scope analysis skipped, SQL did not parse: {e}")
        return []

    found: List[Tuple[List[str], str]] = []
    for scope in scopes:
        select = scope.expression
        if not isinstance(select, exp.Select) or not scope.sources:
            continue
        if not all(isinstance(source, exp.Table) for source in scope.sources.values()):
            continue
        tables = [_table_name(source) for source in scope.sources.values()]
        aliases = {e.alias.lower() for e in select.expressions if isinstance(e, exp.Alias)}
        for column in scope.columns:
            if column.table or isinstance(column.this, exp.Star):
                continue
            if column.name.lower() in aliases:
                continue
            ref = (tables, column.name)
            if ref not in found:
                found.append(ref)
    return found
