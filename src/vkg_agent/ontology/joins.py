"""
Join augmenter

Cross-checks ontology relationship mappings against foreign keys found by
live catalog introspection:
- a relationship whose domain and range tables are connected by a foreign key
  (either direction) gets that key as its join condition
- a foreign key between two mapped tables with no covering relationship
  becomes a synthesized relationship named `{FromClass}_{column stem}`

Introspection failures are logged and leave the mapping set as it was.
"""

import asyncio
from typing import Dict, List, Optional

from loguru import logger

from vkg_agent.catalog.models import ForeignKey
from vkg_agent.ontology.models import MappingSet, RelationshipMapping
from vkg_agent.sql.fragments import JoinCondition


def _covers(rel: RelationshipMapping, fk: ForeignKey) -> bool:
    if not rel.join_sql:
        return False
    condition = JoinCondition.parse(rel.join_sql)
    if condition is None:
        return fk.from_column in rel.join_sql and fk.to_column in rel.join_sql
    return condition.mentions_column(fk.from_column) and condition.mentions_column(fk.to_column)


def augment_joins(mappings: MappingSet, foreign_keys: List[ForeignKey]) -> MappingSet:
    """Apply foreign keys to a copy of the mapping set (pure)."""
    augmented = mappings.copy()
    if not foreign_keys:
        return augmented

    class_to_table = {name: m.source_table for name, m in augmented.classes.items() if m.source_table}
    table_to_class = {table.lower(): name for name, table in class_to_table.items()}

    fk_by_table: Dict[str, List[ForeignKey]] = {}
    for fk in foreign_keys:
        fk_by_table.setdefault(fk.from_table.lower(), []).append(fk)

    corrected = 0
    for name, rel in augmented.relationships.items():
        domain_table = class_to_table.get(rel.domain)
        range_table = class_to_table.get(rel.range)
        if not domain_table or not range_table:
            continue

        forward = next(
            (fk for fk in fk_by_table.get(domain_table.lower(), []) if fk.to_table.lower() == range_table.lower()),
            None,
        )
        reverse = next(
            (fk for fk in fk_by_table.get(range_table.lower(), []) if fk.to_table.lower() == domain_table.lower()),
            None,
        )
        fk = forward or reverse
        if fk is None:
            continue

        join_sql = JoinCondition.between(fk.from_table, fk.from_column, fk.to_table, fk.to_column).sql()
        if rel.join_sql != join_sql:
            logger.info(f"🔗 Augmented JOIN for {name}: {rel.join_sql or '(missing)'} -> {join_sql}")
            rel.join_sql = join_sql
            corrected += 1

    added = 0
    for fk in foreign_keys:
        from_class = table_to_class.get(fk.from_table.lower())
        to_class = table_to_class.get(fk.to_table.lower())
        if not from_class or not to_class:
            continue
        if any(_covers(rel, fk) for rel in augmented.relationships.values()):
            continue

        stem = fk.from_column[:-3] if fk.from_column.endswith("_id") else fk.from_column
        rel_name = f"{from_class}_{stem}"
        augmented.relationships[rel_name] = RelationshipMapping(
            name=rel_name,
            domain=from_class,
            range=to_class,
            join_sql=JoinCondition.between(fk.from_table, fk.from_column, fk.to_table, fk.to_column).sql(),
            synthesized=True,
        )
        added += 1
        logger.info(f"🔗 Added FK relationship {rel_name}: {from_class} -> {to_class}")

    if corrected or added:
        logger.info(f"Join augmentation: {corrected} corrected, {added} added from {len(foreign_keys)} FK(s)")
    return augmented


class JoinAugmenter:
    """Introspects the catalogs behind mapped tables and applies their foreign keys."""

    def __init__(self, catalog_registry):
        self.catalog_registry = catalog_registry

    async def augment(self, tenant_id: str, workspace_id: Optional[str], mappings: MappingSet) -> MappingSet:
        catalogs = sorted(
            {m.source_table.split(".")[0] for m in mappings.classes.values() if m.source_table.count(".") >= 2}
        )
        if not catalogs:
            return mappings

        async def introspect(catalog: str):
            try:
                return await self.catalog_registry.introspect_catalog(tenant_id, catalog, workspace_id)
            except Exception as e:
                logger.warning(f"FK introspection failed for catalog {catalog}: {e}")
                return None

        results = await asyncio.gather(*(introspect(c) for c in catalogs))
        foreign_keys = [fk for result in results if result is not None for fk in result.relationships]
        if not foreign_keys:
            logger.debug("No FK relationships detected from introspection")
            return mappings

        logger.info(f"🔗 Introspection found {len(foreign_keys)} foreign key relationship(s)")
        return augment_joins(mappings, foreign_keys)
