"""
Tests for foreign-key based join augmentation.
"""

import pytest

from vkg_agent.catalog.models import ForeignKey
from vkg_agent.ontology.joins import JoinAugmenter, augment_joins
from vkg_agent.ontology.models import MappingSet
from conftest import FakeCatalogRegistry

FK = ForeignKey(
    from_table="tacme_bank.public.transactions",
    from_column="customer_id",
    to_table="tacme_bank.public.customers",
    to_column="id",
)


def _mappings(relationships=None):
    return MappingSet.from_dict(
        {
            "classes": {
                "Customer": {"sourceTable": "tacme_bank.public.customers", "sourceIdColumn": "id"},
                "Transaction": {"sourceTable": "tacme_bank.public.transactions", "sourceIdColumn": "id"},
            },
            "relationships": relationships or {},
        }
    )


def test_wrong_join_is_corrected_from_reverse_fk():
    mappings = _mappings(
        {"hasTransaction": {"joinSQL": "customers.id = transactions.id", "domain": "Customer", "range": "Transaction"}}
    )

    augmented = augment_joins(mappings, [FK])

    assert augmented.relationships["hasTransaction"].join_sql == (
        "tacme_bank.public.transactions.customer_id = tacme_bank.public.customers.id"
    )
    assert mappings.relationships["hasTransaction"].join_sql == "customers.id = transactions.id"


def test_missing_join_is_filled_in():
    mappings = _mappings({"madeBy": {"domain": "Transaction", "range": "Customer"}})

    augmented = augment_joins(mappings, [FK])

    assert augmented.relationships["madeBy"].join_sql == (
        "tacme_bank.public.transactions.customer_id = tacme_bank.public.customers.id"
    )
    assert "Transaction_customer" not in augmented.relationships


def test_uncovered_fk_becomes_synthesized_relationship():
    augmented = augment_joins(_mappings(), [FK])

    rel = augmented.relationships["Transaction_customer"]
    assert rel.synthesized
    assert rel.domain == "Transaction"
    assert rel.range == "Customer"
    assert rel.join_sql == "tacme_bank.public.transactions.customer_id = tacme_bank.public.customers.id"


def test_fk_between_unmapped_tables_is_ignored():
    fk = ForeignKey("tacme_bank.public.orders", "branch_id", "tacme_bank.public.branches", "id")

    augmented = augment_joins(_mappings(), [fk])

    assert augmented.relationships == {}


def test_no_foreign_keys_returns_equal_copy():
    mappings = _mappings()

    augmented = augment_joins(mappings, [])

    assert augmented.to_dict() == mappings.to_dict()
    assert augmented is not mappings


@pytest.mark.asyncio
async def test_augmenter_introspects_each_mapped_catalog_once(bank_catalog_schema):
    registry = FakeCatalogRegistry([], {"tacme_bank": bank_catalog_schema})

    augmented = await JoinAugmenter(registry).augment("acme", "ws-1", _mappings())

    assert registry.introspected == ["tacme_bank"]
    assert "Transaction_customer" in augmented.relationships


@pytest.mark.asyncio
async def test_introspection_failure_leaves_mappings_unchanged():
    registry = FakeCatalogRegistry([], {})
    mappings = _mappings()

    augmented = await JoinAugmenter(registry).augment("acme", None, mappings)

    assert augmented.to_dict() == mappings.to_dict()


@pytest.mark.asyncio
async def test_two_part_tables_are_not_introspected(bank_mappings):
    registry = FakeCatalogRegistry([], {})

    await JoinAugmenter(registry).augment("acme", None, bank_mappings)

    assert registry.introspected == []
