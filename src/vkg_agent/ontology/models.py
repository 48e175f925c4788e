"""
Ontology and mapping models

The ontology schema (classes, object properties, data properties) comes from
the ontology store. The mapping set (class -> table, property -> column,
relationship -> join condition) comes from the mapping annotation store and is
rewritten in memory by the resolver and join augmenter for each request.
"""

import copy
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set

from vkg_agent.sql.fragments import JoinCondition


def local_name(iri: str) -> str:
    """Last segment of an IRI (after '#' or '/')."""
    if not iri:
        return ""
    return iri.replace("#", "/").rstrip("/").split("/")[-1]


@dataclass(frozen=True)
class OntologyClass:
    """An ontology class as loaded from the ontology store."""
    name: str
    iri: str = ""
    label: str = ""
    description: str = ""
    properties: tuple = ()

    @property
    def local_name(self) -> str:
        return local_name(self.iri) or self.name

    def matches(self, names: Set[str]) -> bool:
        return bool({self.name, self.label, self.local_name} & names)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OntologyClass":
        iri = data.get("iri") or data.get("uri") or ""
        name = data.get("name") or data.get("label") or local_name(iri)
        return cls(
            name=name,
            iri=iri,
            label=data.get("label") or name,
            description=data.get("description") or data.get("comment") or "",
            properties=tuple(data.get("properties") or ()),
        )


@dataclass(frozen=True)
class OntologyProperty:
    """Object or data property. `range` is a class name or an xsd type."""
    name: str
    iri: str = ""
    label: str = ""
    domain: str = ""
    range: str = ""
    description: str = ""

    @property
    def local_name(self) -> str:
        return local_name(self.iri) or self.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OntologyProperty":
        iri = data.get("iri") or data.get("uri") or ""
        name = data.get("name") or data.get("label") or local_name(iri)
        return cls(
            name=name,
            iri=iri,
            label=data.get("label") or name,
            domain=local_name(data.get("domain") or ""),
            range=local_name(data.get("range") or ""),
            description=data.get("description") or data.get("comment") or "",
        )


@dataclass
class OntologySchema:
    classes: List[OntologyClass] = field(default_factory=list)
    object_properties: List[OntologyProperty] = field(default_factory=list)
    data_properties: List[OntologyProperty] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "classes": [asdict(c) for c in self.classes],
            "objectProperties": [asdict(p) for p in self.object_properties],
            "dataProperties": [asdict(p) for p in self.data_properties],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OntologySchema":
        return cls(
            classes=[OntologyClass.from_dict(c) for c in data.get("classes", [])],
            object_properties=[OntologyProperty.from_dict(p) for p in data.get("objectProperties", [])],
            data_properties=[OntologyProperty.from_dict(p) for p in data.get("dataProperties", [])],
        )


@dataclass
class ClassMapping:
    """Class -> physical table."""
    name: str
    source_table: str = ""
    source_id_column: str = ""


@dataclass
class PropertyMapping:
    """Data property -> physical column. `range` is the declared value type."""
    name: str
    source_column: str = ""
    source_table: str = ""
    domain: str = ""
    range: str = ""


@dataclass
class RelationshipMapping:
    """Object property -> join condition between the domain and range tables."""
    name: str
    domain: str = ""
    range: str = ""
    join_sql: str = ""
    synthesized: bool = False


# Wire names used by the mapping annotation store (vkgmap: predicates)
_CLASS_KEYS = {"sourceTable": "source_table", "sourceIdColumn": "source_id_column"}
_PROPERTY_KEYS = {
    "sourceColumn": "source_column",
    "sourceTable": "source_table",
    "domain": "domain",
    "range": "range",
}
_RELATIONSHIP_KEYS = {"joinSQL": "join_sql", "domain": "domain", "range": "range"}


def _pick(data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    return {attr: data[wire] for wire, attr in keys.items() if data.get(wire)}


def _emit(obj: Any, keys: Dict[str, str]) -> Dict[str, Any]:
    return {wire: getattr(obj, attr) for wire, attr in keys.items() if getattr(obj, attr)}


@dataclass
class MappingSet:
    """
    Ontology-to-physical mappings for one workspace.

    Serializes to the annotation store's shape:
        {"classes": {Name: {"sourceTable", "sourceIdColumn"}},
         "properties": {name: {"sourceColumn", "sourceTable", "domain", "range"}},
         "relationships": {name: {"joinSQL", "domain", "range"}}}
    """
    classes: Dict[str, ClassMapping] = field(default_factory=dict)
    properties: Dict[str, PropertyMapping] = field(default_factory=dict)
    relationships: Dict[str, RelationshipMapping] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.classes

    def copy(self) -> "MappingSet":
        return copy.deepcopy(self)

    def mapped_tables(self) -> Set[str]:
        """Lowercased source tables of mapped classes and properties."""
        tables = {m.source_table.lower() for m in self.classes.values() if m.source_table}
        tables.update(p.source_table.lower() for p in self.properties.values() if p.source_table)
        return tables

    def table_for_class(self, class_name: str) -> Optional[str]:
        mapping = self.classes.get(class_name)
        return mapping.source_table if mapping and mapping.source_table else None

    def columns_by_table(self) -> Dict[str, Set[str]]:
        """
        Known columns per (lowercased) table: each class's id column plus every
        property column whose table or domain class maps to it, plus the
        qualified columns named in relationship join conditions.
        """
        columns: Dict[str, Set[str]] = {}
        for mapping in self.classes.values():
            if not mapping.source_table:
                continue
            cols = columns.setdefault(mapping.source_table.lower(), set())
            if mapping.source_id_column:
                cols.add(mapping.source_id_column.lower())

        for prop in self.properties.values():
            if not prop.source_column:
                continue
            table = prop.source_table or self.table_for_class(prop.domain) or ""
            if table:
                columns.setdefault(table.lower(), set()).add(prop.source_column.lower())

        for rel in self.relationships.values():
            condition = JoinCondition.parse(rel.join_sql)
            if condition is None:
                continue
            for side in (condition.left, condition.right):
                if side.table is not None and side.table.schema:
                    columns.setdefault(side.table.sql().lower(), set()).add(side.column.lower())
        return columns

    def to_dict(self) -> Dict[str, Any]:
        return {
            "classes": {n: _emit(m, _CLASS_KEYS) for n, m in self.classes.items()},
            "properties": {n: _emit(m, _PROPERTY_KEYS) for n, m in self.properties.items()},
            "relationships": {n: _emit(m, _RELATIONSHIP_KEYS) for n, m in self.relationships.items()},
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MappingSet":
        data = data or {}
        return cls(
            classes={
                name: ClassMapping(name=name, **_pick(meta or {}, _CLASS_KEYS))
                for name, meta in (data.get("classes") or {}).items()
            },
            properties={
                name: PropertyMapping(name=name, **_pick(meta or {}, _PROPERTY_KEYS))
                for name, meta in (data.get("properties") or {}).items()
            },
            relationships={
                name: RelationshipMapping(name=name, **_pick(meta or {}, _RELATIONSHIP_KEYS))
                for name, meta in (data.get("relationships") or {}).items()
            },
        )
