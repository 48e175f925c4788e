"""
Schema drift detection

Diffs the mapped tables/columns recorded in the ontology against a fresh
introspection of the live catalogs. Drift is advisory: it only ever
produces warnings, never errors.
"""

import warnings as _warnings
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from vkg_agent.catalog.models import CatalogSchema
from vkg_agent.ontology.models import MappingSet
from vkg_agent.utils.errors import DriftWarning


@dataclass
class SchemaDriftReport:
    new_tables: List[str] = field(default_factory=list)
    removed_tables: List[str] = field(default_factory=list)
    new_columns: List[str] = field(default_factory=list)  # table.column
    removed_columns: List[str] = field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.new_tables or self.removed_tables or self.new_columns or self.removed_columns)

    def warnings(self) -> List[str]:
        messages = []
        if self.removed_tables:
            messages.append(
                f"Schema drift: {len(self.removed_tables)} mapped table(s) no longer exist in database: "
                f"{', '.join(self.removed_tables)}"
            )
        if self.removed_columns:
            shown = ", ".join(self.removed_columns[:5])
            more = f" (+{len(self.removed_columns) - 5} more)" if len(self.removed_columns) > 5 else ""
            messages.append(
                f"Schema drift: {len(self.removed_columns)} mapped column(s) no longer exist: {shown}{more}"
            )
        if self.new_tables:
            messages.append(
                f"{len(self.new_tables)} new table(s) found but not in ontology. Consider regenerating."
            )
        return messages

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "has_drift": self.has_drift}


def diff_schema(mappings: MappingSet, live: List[CatalogSchema]) -> SchemaDriftReport:
    """
    Compare mapped tables/columns with introspected ones (case-insensitive).

    Only tables that exist on both sides contribute column diffs; a removed
    table is reported once as a table, not again per column. Tables in a
    catalog whose introspection failed are never reported as removed.
    """
    live_tables: Dict[str, Set[str]] = {}
    live_names: Dict[str, str] = {}
    unreadable: Set[str] = set()
    for catalog in live:
        if catalog.error:
            unreadable.add(catalog.catalog.lower())
            continue
        for table in catalog.tables:
            live_tables[table.full_name.lower()] = {c.name.lower() for c in table.columns}
            live_names[table.full_name.lower()] = table.full_name

    mapped_columns = mappings.columns_by_table()
    mapped_names = {
        m.source_table.lower(): m.source_table for m in mappings.classes.values() if m.source_table
    }

    report = SchemaDriftReport()
    report.new_tables = sorted(live_names[t] for t in live_tables if t not in mapped_names)
    report.removed_tables = sorted(
        mapped_names[t] for t in mapped_names if t not in live_tables and t.split(".")[0] not in unreadable
    )

    for table, mapped in mapped_columns.items():
        if table not in live_tables or table not in mapped_names:
            continue
        current = live_tables[table]
        name = mapped_names[table]
        report.removed_columns.extend(f"{name}.{c}" for c in sorted(mapped - current))
        report.new_columns.extend(f"{name}.{c}" for c in sorted(current - mapped))
    return report


class SchemaDriftDetector:
    """Runs drift detection against the catalog registry; never raises."""

    def __init__(self, catalog_registry):
        self.catalog_registry = catalog_registry

    async def detect(
        self, tenant_id: str, workspace_id: Optional[str], mappings: MappingSet
    ) -> Optional[SchemaDriftReport]:
        if mappings.is_empty:
            return None
        try:
            live = await self.catalog_registry.introspect_all_catalogs(tenant_id, workspace_id)
            report = diff_schema(mappings, live)
        except Exception as e:
            logger.debug(f"Drift detection skipped: {e}")
            return None

        if report.has_drift:
            for message in report.warnings():
                _warnings.warn(message, DriftWarning, stacklevel=2)
                logger.warning(f"⚠️  {message}")
        return report
