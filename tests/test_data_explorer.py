"""
Tests for zero-row exploration: filter column recovery, value lookups and the
explanation fallback.
"""

import pytest

from vkg_agent.agents.vkg.explorer import NO_RESULTS_MESSAGE, DataExplorer
from vkg_agent.utils.errors import ExecutionError
from conftest import FakeChat, FakeConnections, FakeTrinoClient, result_of

SQL = (
    "SELECT c.name FROM tacme_bank.public.customers c "
    "JOIN tacme_bank.public.transactions t ON t.customer_id = c.id "
    "WHERE LOWER(c.city) LIKE '%pariss%' AND c.city <> '' AND t.amount > 10000 LIMIT 1000"
)


def _exploration_handler(sql):
    if "COUNT(*) AS total" in sql:
        return result_of(["total"], [[42]])
    if "GROUP BY city" in sql:
        return result_of(["city", "cnt"], [["Paris", 20], ["Lyon", 12]])
    if "GROUP BY amount" in sql:
        return result_of(["amount", "cnt"], [[500, 3]])
    raise AssertionError(f"unexpected exploration query: {sql}")


def test_filter_targets_resolve_aliases():
    explorer = DataExplorer(None, None)

    assert explorer.filter_targets(SQL) == [
        ("tacme_bank.public.customers", "city"),
        ("tacme_bank.public.transactions", "amount"),
    ]


def test_filter_targets_skip_unqualified_tables():
    explorer = DataExplorer(None, None)

    assert explorer.filter_targets("SELECT c.id FROM customers c WHERE c.city = 'Paris'") == []


@pytest.mark.asyncio
async def test_one_lookup_per_distinct_filter_column():
    client = FakeTrinoClient(handler=_exploration_handler)
    explorer = DataExplorer(FakeConnections(client), None, distinct_limit=25)

    exploration = await explorer.explore(SQL, "ws-1")

    distinct_lookups = [s for s in client.executed if "GROUP BY" in s]
    assert len(distinct_lookups) == 2
    assert all("LIMIT 25" in s for s in distinct_lookups)
    assert exploration.startswith("Total rows in tacme_bank.public.customers: 42")
    assert 'Column "city" in tacme_bank.public.customers has 2 distinct values:\n  Paris (20 rows), Lyon (12 rows)' in exploration
    assert 'Column "amount" in tacme_bank.public.transactions has 1 distinct values' in exploration


@pytest.mark.asyncio
async def test_failed_lookup_is_skipped():
    def handler(sql):
        if "GROUP BY city" in sql:
            raise ExecutionError("permission denied")
        return _exploration_handler(sql)

    explorer = DataExplorer(FakeConnections(FakeTrinoClient(handler=handler)), None)

    exploration = await explorer.explore(SQL)

    assert "city" not in exploration
    assert 'Column "amount"' in exploration


@pytest.mark.asyncio
async def test_no_filter_columns_means_generic_message_and_no_queries():
    client = FakeTrinoClient(handler=_exploration_handler)
    chat = FakeChat(["should not be used"])
    explorer = DataExplorer(FakeConnections(client), chat)

    answer = await explorer.explain("How many customers?", "SELECT COUNT(*) FROM tacme_bank.public.customers", None)

    assert answer == NO_RESULTS_MESSAGE
    assert client.executed == []
    assert chat.calls == []


@pytest.mark.asyncio
async def test_explanation_uses_exploration_and_answer_temperature():
    chat = FakeChat(["  No customers live in 'Pariss'. Try Paris (20 customers).  "])
    explorer = DataExplorer(FakeConnections(FakeTrinoClient(handler=_exploration_handler)), chat, temperature=0.3)

    answer = await explorer.explain("Customers in Pariss with big transactions", SQL, "ws-1")

    assert answer == "No customers live in 'Pariss'. Try Paris (20 customers)."
    call = chat.calls[0]
    assert call["options"] == {"temperature": 0.3}
    assert "Paris (20 rows)" in call["messages"][1]["content"]
    assert "The query returned 0 rows." in call["messages"][1]["content"]
