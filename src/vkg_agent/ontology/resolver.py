"""
Mapping resolver

Rewrites two-part `database.table` references in the mapping set into the
engine's three-part `catalog.database.table` form, using the tenant's
registered catalogs to find which catalog backs each physical database.

Resolution is idempotent: three-part names are never touched, so running it
on already-resolved mappings is a no-op.
"""

from typing import Dict, Iterable, List, Optional, Set

from loguru import logger

from vkg_agent.catalog.models import CatalogEntry
from vkg_agent.ontology.models import MappingSet
from vkg_agent.sql.fragments import TableRef, rewrite_table_refs


def build_catalog_lookup(catalogs: Iterable[CatalogEntry]) -> Dict[str, str]:
    """Lowercased physical database (or schema) name -> catalog name."""
    lookup = {}
    for entry in catalogs:
        database = entry.physical_database
        if database and entry.catalog_name:
            lookup[database.lower()] = entry.catalog_name
    return lookup


def resolve_table_name(name: str, lookup: Dict[str, str]) -> str:
    """
    `db.table` -> `catalog.db.table` when `db` is a registered database.

    Anything else (bare names, unknown databases, already three-part names)
    is returned unchanged.

    Example:
        resolve_table_name("sales.customers", {"sales": "tacme_sales"})
        -> "tacme_sales.sales.customers"
    """
    if not name or name.count(".") != 1:
        return name
    try:
        ref = TableRef.parse(name)
    except ValueError:
        return name
    catalog = lookup.get(ref.schema.lower())
    if not catalog:
        return name
    return ref.with_catalog(catalog).sql()


def resolve_join_sql(join_sql: str, lookup: Dict[str, str], catalog_names: Set[str]) -> str:
    """Qualify `db.table.column` chains in a join condition with their catalog."""

    def qualify(ref: TableRef) -> TableRef:
        if ref.catalog or ref.schema in catalog_names:
            return ref
        catalog = lookup.get(ref.schema.lower())
        return ref.with_catalog(catalog) if catalog else ref

    return rewrite_table_refs(join_sql, qualify)


def resolve_mappings(mappings: MappingSet, catalogs: List[CatalogEntry]) -> MappingSet:
    """Return a resolved deep copy; the input mapping set is left untouched."""
    resolved = mappings.copy()
    lookup = build_catalog_lookup(catalogs)
    if not lookup:
        return resolved
    catalog_names = {c.catalog_name for c in catalogs}

    for mapping in resolved.classes.values():
        mapping.source_table = resolve_table_name(mapping.source_table, lookup)
    for prop in resolved.properties.values():
        prop.source_table = resolve_table_name(prop.source_table, lookup)
    for rel in resolved.relationships.values():
        if rel.join_sql:
            rel.join_sql = resolve_join_sql(rel.join_sql, lookup, catalog_names)
    return resolved


class MappingResolver:
    """Resolves a workspace's mapping set against its registered catalogs."""

    def __init__(self, catalog_registry):
        self.catalog_registry = catalog_registry

    async def resolve(self, tenant_id: str, workspace_id: Optional[str], mappings: MappingSet) -> MappingSet:
        try:
            catalogs = await self.catalog_registry.list_catalogs(tenant_id, workspace_id)
        except Exception as e:
            logger.warning(f"Could not list catalogs for table-name resolution: {e}")
            return mappings.copy()

        resolved = resolve_mappings(mappings, catalogs)
        logger.debug(
            f"Resolved table names against {len(catalogs)} catalog(s): "
            f"{sorted(m.source_table for m in resolved.classes.values() if m.source_table)}"
        )
        return resolved
