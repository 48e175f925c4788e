"""
Catalog models - registered databases and their introspected schemas
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class ColumnInfo:
    name: str
    type: str = ""
    is_primary_key: bool = False
    is_foreign_key: bool = False


@dataclass
class TableInfo:
    name: str
    full_name: str  # catalog.schema.table
    catalog: str = ""
    schema: str = ""
    columns: List[ColumnInfo] = field(default_factory=list)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@dataclass(frozen=True)
class ForeignKey:
    """Inferred foreign key, table names fully qualified."""
    from_table: str
    from_column: str
    to_table: str
    to_column: str


@dataclass
class CatalogSchema:
    """Introspection result for one catalog.schema."""
    catalog: str
    schema: str = ""
    tables: List[TableInfo] = field(default_factory=list)
    relationships: List[ForeignKey] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CatalogEntry:
    """
    Registered external database.

    `catalog_name` is the engine-visible, tenant-namespaced name; `name` is the
    label the user registered it under.
    """
    name: str
    catalog_name: str
    connector: str = "postgresql"
    host: str = ""
    port: int = 0
    database: str = ""
    schema: str = ""
    user: str = ""
    status: str = "pending"  # pending | registered | active | removed
    registered_at: str = ""
    source: str = "registered"  # registered | discovered
    error: Optional[str] = None

    @property
    def physical_database(self) -> str:
        """Database (or schema, for connectors without databases) backing the catalog."""
        return self.database or self.schema

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogEntry":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known.setdefault("name", data.get("catalog_name", ""))
        return cls(**known)
