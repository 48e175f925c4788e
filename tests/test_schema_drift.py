"""
Tests for schema drift detection.
"""

import pytest

from vkg_agent.catalog.models import CatalogSchema, ColumnInfo, TableInfo
from vkg_agent.ontology.drift import SchemaDriftDetector, SchemaDriftReport, diff_schema
from vkg_agent.ontology.models import MappingSet
from conftest import FakeCatalogRegistry


def _table(name, columns):
    return TableInfo(
        name=name,
        full_name=f"tacme_bank.public.{name}",
        catalog="tacme_bank",
        schema="public",
        columns=[ColumnInfo(c) for c in columns],
    )


def test_matching_schema_has_no_drift(resolved_bank_mappings, bank_catalog_schema):
    report = diff_schema(resolved_bank_mappings, [bank_catalog_schema])

    assert not report.has_drift
    assert report.warnings() == []


def test_removed_and_new_tables(resolved_bank_mappings):
    live = CatalogSchema(
        catalog="tacme_bank",
        schema="public",
        tables=[_table("customers", ["id", "name", "city"]), _table("branches", ["id"])],
    )

    report = diff_schema(resolved_bank_mappings, [live])

    assert report.removed_tables == ["tacme_bank.public.transactions"]
    assert report.new_tables == ["tacme_bank.public.branches"]
    # a removed table is not reported again column by column
    assert report.removed_columns == []
    assert report.has_drift


def test_removed_and_new_columns(resolved_bank_mappings):
    live = CatalogSchema(
        catalog="tacme_bank",
        schema="public",
        tables=[
            _table("customers", ["id", "name", "email"]),
            _table("transactions", ["id", "customer_id", "amount"]),
        ],
    )

    report = diff_schema(resolved_bank_mappings, [live])

    assert report.removed_columns == ["tacme_bank.public.customers.city"]
    assert report.new_columns == ["tacme_bank.public.customers.email"]
    assert report.warnings() == [
        "Schema drift: 1 mapped column(s) no longer exist: tacme_bank.public.customers.city"
    ]


def test_column_comparison_ignores_case(resolved_bank_mappings):
    live = CatalogSchema(
        catalog="tacme_bank",
        tables=[
            _table("customers", ["ID", "Name", "CITY"]),
            _table("transactions", ["id", "Customer_Id", "amount"]),
        ],
    )

    assert not diff_schema(resolved_bank_mappings, [live]).has_drift


def test_failed_catalog_introspection_is_skipped(resolved_bank_mappings, bank_catalog_schema):
    failed = CatalogSchema(catalog="tacme_other", error="not loaded")

    report = diff_schema(resolved_bank_mappings, [bank_catalog_schema, failed])

    assert not report.has_drift


@pytest.mark.parametrize(
    "field_name",
    ["new_tables", "removed_tables", "new_columns", "removed_columns"],
)
def test_has_drift_iff_any_list_is_non_empty(field_name):
    report = SchemaDriftReport()
    assert not report.has_drift

    getattr(report, field_name).append("x")

    assert report.has_drift


def test_removed_columns_warning_is_truncated():
    report = SchemaDriftReport(removed_columns=[f"t.c{i}" for i in range(7)])

    assert report.warnings() == [
        "Schema drift: 7 mapped column(s) no longer exist: t.c0, t.c1, t.c2, t.c3, t.c4 (+2 more)"
    ]


@pytest.mark.asyncio
async def test_detector_returns_none_for_empty_mappings(bank_catalog_schema):
    detector = SchemaDriftDetector(FakeCatalogRegistry([], {"tacme_bank": bank_catalog_schema}))

    assert await detector.detect("acme", None, MappingSet()) is None


@pytest.mark.asyncio
async def test_detector_swallows_registry_errors(resolved_bank_mappings):
    class OfflineRegistry:
        async def introspect_all_catalogs(self, tenant_id, workspace_id=None):
            raise RuntimeError("Trino coordinator is not running")

    assert await SchemaDriftDetector(OfflineRegistry()).detect("acme", None, resolved_bank_mappings) is None


@pytest.mark.asyncio
async def test_detector_reports_drift(resolved_bank_mappings):
    live = CatalogSchema(catalog="tacme_bank", tables=[_table("customers", ["id", "name", "city"])])
    detector = SchemaDriftDetector(FakeCatalogRegistry([], {"tacme_bank": live}))

    with pytest.warns(UserWarning, match="no longer exist in database"):
        report = await detector.detect("acme", "ws-1", resolved_bank_mappings)

    assert report.removed_tables == ["tacme_bank.public.transactions"]


def test_tables_of_unreadable_catalog_are_not_reported_removed(resolved_bank_mappings):
    failed = CatalogSchema(catalog="tacme_bank", error="Trino coordinator is not running")

    report = diff_schema(resolved_bank_mappings, [failed])

    assert report.removed_tables == []
    assert not report.has_drift
