"""
Typed SQL fragments

Table references, column references and join conditions as values instead
of concatenated strings. Generated statements (data exploration queries) are
built with sqlglot's expression builder and rendered in the Trino dialect.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from sqlglot import exp

DIALECT = "trino"

_IDENTIFIER_CHAIN = re.compile(r"(?<![\w.])[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)+(?![\w(])")
_JOIN_CONDITION = re.compile(r"^\s*([A-Za-z_][\w.]*)\s*=\s*([A-Za-z_][\w.]*)\s*$")


@dataclass(frozen=True)
class TableRef:
    """`table`, `schema.table` or `catalog.schema.table`."""
    table: str
    schema: str = ""
    catalog: str = ""

    @classmethod
    def parse(cls, text: str) -> "TableRef":
        parts = [p.strip().strip('"') for p in text.strip().split(".")]
        if not parts or not all(parts) or len(parts) > 3:
            raise ValueError(f"Not a table reference: {text!r}")
        if len(parts) == 3:
            return cls(catalog=parts[0], schema=parts[1], table=parts[2])
        if len(parts) == 2:
            return cls(schema=parts[0], table=parts[1])
        return cls(table=parts[0])

    @property
    def parts(self) -> Tuple[str, ...]:
        return tuple(p for p in (self.catalog, self.schema, self.table) if p)

    @property
    def is_fully_qualified(self) -> bool:
        return bool(self.catalog and self.schema)

    def with_catalog(self, catalog: str) -> "TableRef":
        return TableRef(table=self.table, schema=self.schema, catalog=catalog)

    def sql(self) -> str:
        return ".".join(self.parts)

    def to_expression(self) -> exp.Table:
        return exp.table_(self.table, db=self.schema or None, catalog=self.catalog or None)

    def __str__(self) -> str:
        return self.sql()


@dataclass(frozen=True)
class ColumnRef:
    column: str
    table: Optional[TableRef] = None

    @classmethod
    def parse(cls, text: str) -> "ColumnRef":
        """Last segment is the column, anything before it the table (up to 3 parts)."""
        head, _, column = text.strip().rpartition(".")
        if not column:
            raise ValueError(f"Not a column reference: {text!r}")
        return cls(column=column, table=TableRef.parse(head) if head else None)

    def sql(self) -> str:
        return f"{self.table.sql()}.{self.column}" if self.table else self.column

    def __str__(self) -> str:
        return self.sql()


@dataclass(frozen=True)
class JoinCondition:
    """Equality join `left = right`."""
    left: ColumnRef
    right: ColumnRef

    @classmethod
    def parse(cls, text: str) -> Optional["JoinCondition"]:
        """None when the text is not a single column equality."""
        match = _JOIN_CONDITION.match(text or "")
        if not match:
            return None
        try:
            return cls(left=ColumnRef.parse(match.group(1)), right=ColumnRef.parse(match.group(2)))
        except ValueError:
            return None

    @classmethod
    def between(cls, from_table: str, from_column: str, to_table: str, to_column: str) -> "JoinCondition":
        return cls(
            left=ColumnRef(column=from_column, table=TableRef.parse(from_table)),
            right=ColumnRef(column=to_column, table=TableRef.parse(to_table)),
        )

    def mentions_column(self, column: str) -> bool:
        return column.lower() in (self.left.column.lower(), self.right.column.lower())

    def sql(self) -> str:
        return f"{self.left.sql()} = {self.right.sql()}"

    def __str__(self) -> str:
        return self.sql()


def rewrite_table_refs(fragment: str, rewrite: Callable[[TableRef], TableRef]) -> str:
    """
    Rewrite the table part of every `schema.table.column` chain in a SQL fragment.

    Only three-part chains are touched: two-part chains are alias/table + column
    and four-part chains are already fully qualified.
    """

    def replace(match: "re.Match") -> str:
        chain = match.group(0)
        if chain.count(".") != 2:
            return chain
        column = ColumnRef.parse(chain)
        return ColumnRef(column=column.column, table=rewrite(column.table)).sql()

    return _IDENTIFIER_CHAIN.sub(replace, fragment or "")


def distinct_values_query(table: TableRef, column: str, limit: int = 25) -> str:
    """Most frequent values of one column: value, cnt ordered by cnt desc."""
    column_expr = exp.column(column)
    query = (
        exp.select(column_expr, exp.alias_(exp.Count(this=exp.Star()), "cnt"))
        .distinct()
        .from_(table.to_expression())
        .group_by(exp.column(column))
        .order_by(exp.Ordered(this=exp.column("cnt"), desc=True))
        .limit(limit)
    )
    return query.sql(dialect=DIALECT)


def row_count_query(table: TableRef) -> str:
    query = exp.select(exp.alias_(exp.Count(this=exp.Star()), "total")).from_(table.to_expression())
    return query.sql(dialect=DIALECT)
