"""
Data explorer for empty result sets

When a query matches nothing, the filter values were usually wrong (a
misspelt city, a status that is stored in another case). The explorer
recovers the filtered columns from the WHERE clause, samples the values
that do exist, and has the model explain the mismatch.
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from vkg_agent.agents.vkg.prompts import build_exploration_messages
from vkg_agent.sql.fragments import TableRef, distinct_values_query, row_count_query
from vkg_agent.sql.inspection import RegexSQLInspector, SQLInspector

NO_RESULTS_MESSAGE = (
    "No results found for this query. The filter criteria may not match any records in the database."
)


class DataExplorer:
    """Explains zero-row results with the distinct values of each filtered column."""

    def __init__(
        self,
        executor,
        chat,
        inspector: Optional[SQLInspector] = None,
        distinct_limit: int = 25,
        temperature: float = 0.3,
    ):
        self.executor = executor
        self.chat = chat
        self.inspector = inspector or RegexSQLInspector()
        self.distinct_limit = distinct_limit
        self.temperature = temperature

    def filter_targets(self, sql: str) -> List[Tuple[str, str]]:
        """Distinct (table, column) pairs filtered in WHERE, resolved through FROM/JOIN aliases."""
        aliases = self.inspector.table_aliases(sql)
        targets: Dict[str, Tuple[str, str]] = {}
        for alias, column in self.inspector.filter_columns(sql):
            table = aliases.get(alias.lower())
            if not table or not TableRef.parse(table).is_fully_qualified:
                continue
            targets.setdefault(f"{table}.{column}".lower(), (table, column))
        return list(targets.values())

    async def explore(self, sql: str, workspace_id: Optional[str] = None) -> Optional[str]:
        """
        Exploration summary, or None when no filter column could be recovered.

        Individual exploration query failures are skipped; none runs at all when the
        WHERE clause yields nothing.
        """
        targets = self.filter_targets(sql)
        if not targets:
            logger.debug("Data exploration: no filter columns recovered from WHERE clause")
            return None

        client = await self.executor.get_client(workspace_id)
        sections: List[str] = []
        for table, column in targets:
            try:
                result = await client.execute_sql(
                    distinct_values_query(TableRef.parse(table), column, self.distinct_limit)
                )
            except Exception as e:
                logger.warning(f"⚠️  Exploration query failed for {table}.{column}: {e}")
                continue
            if result.row_count > 0:
                values = ", ".join(f"{row[0]} ({row[1]} rows)" for row in result.rows)
                sections.append(f'Column "{column}" in {table} has {result.row_count} distinct values:\n  {values}')

        main_table = next(
            (t for t in self.inspector.referenced_tables(sql) if TableRef.parse(t).is_fully_qualified), None
        )
        if main_table:
            try:
                count = await client.execute_sql(row_count_query(TableRef.parse(main_table)))
                if count.rows:
                    sections.insert(0, f"Total rows in {main_table}: {count.rows[0][0]}")
            except Exception as e:
                logger.warning(f"⚠️  Row count failed for {main_table}: {e}")

        return "\n\n".join(sections) or None

    async def explain(self, question: str, sql: str, workspace_id: Optional[str] = None) -> str:
        exploration = await self.explore(sql, workspace_id)
        if not exploration:
            return NO_RESULTS_MESSAGE
        content = await self.chat.chat(
            build_exploration_messages(question, sql, exploration), {"temperature": self.temperature}
        )
        return content.strip()
