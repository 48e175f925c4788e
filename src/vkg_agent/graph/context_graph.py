"""
Context graph builder

Turns tabular query results into an ephemeral evidence graph: one node per
distinct (class, value), edges between classes that co-occur in a row and
are connected by a declared relationship. The graph is returned with the
answer and discarded; nothing here is persisted.
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from vkg_agent.ontology.models import MappingSet, OntologySchema, local_name

_TYPE_HINTS = [
    ("customer", "Customer"),
    ("transaction", "Transaction"),
    ("merchant", "Merchant"),
    ("account", "Account"),
    ("category", "Category"),
    ("product", "Product"),
    ("address", "Address"),
    ("order", "Order"),
    ("invoice", "Invoice"),
    ("payment", "Payment"),
]


@dataclass
class GraphNode:
    id: str
    type: str
    label: str
    value: str
    source: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    relation: str


@dataclass
class ReasoningTraceStep:
    step: str
    evidence: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ContextGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    row_count: int = 0
    databases: List[str] = field(default_factory=list)
    sql: str = ""
    query_mode: str = "vkg_federated"

    @property
    def cardinality(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for node in self.nodes:
            counts[node.type] = counts.get(node.type, 0) + 1
        return counts

    @property
    def statistics(self) -> Dict[str, Any]:
        return {
            "node_count": len(self.nodes),
            "edge_count": len(self.edges),
            "cardinality": self.cardinality,
            "row_count": self.row_count,
            "databases_queried": list(self.databases),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [asdict(n) for n in self.nodes],
            "edges": [asdict(e) for e in self.edges],
            "statistics": self.statistics,
            "provenance": {"sql": self.sql, "databases": list(self.databases), "query_mode": self.query_mode},
        }


def infer_type_from_column(name: str) -> str:
    """Naming-convention class guess: 'customer_name' -> Customer, 'ship_date' -> ShipDate."""
    lower = name.lower()
    if lower == "tx":
        return "Transaction"
    for hint, class_name in _TYPE_HINTS:
        if hint in lower:
            return class_name
    return re.sub(r"_(\w)", lambda m: m.group(1).upper(), name[:1].upper() + name[1:])


@dataclass(frozen=True)
class ColumnClass:
    class_name: str
    label: str
    source_table: str = ""
    is_id: bool = False


def map_columns_to_classes(columns: List[str], mappings: MappingSet) -> Dict[str, ColumnClass]:
    """
    Column -> ontology class.

    Order of preference: a class's id column (when unambiguous), a property's
    exact source column, a property column the name ends with, then the
    naming-convention fallback.
    """
    result: Dict[str, ColumnClass] = {}

    id_owners: Dict[str, List[str]] = {}
    for name, mapping in mappings.classes.items():
        if mapping.source_id_column:
            id_owners.setdefault(mapping.source_id_column.lower(), []).append(name)
    for col in columns:
        owners = id_owners.get(col.lower(), [])
        if len(owners) == 1:
            owner = owners[0]
            result[col] = ColumnClass(owner, col, mappings.classes[owner].source_table, is_id=True)

    typed_props = [p for p in mappings.properties.values() if p.source_column and p.domain]
    for exact in (True, False):
        for prop in typed_props:
            for col in columns:
                if col in result:
                    continue
                hit = col.lower() == prop.source_column.lower() if exact else col.lower().endswith(prop.source_column.lower())
                if hit:
                    result[col] = ColumnClass(prop.domain, prop.name, mappings.table_for_class(prop.domain) or "")

    for col in columns:
        if col not in result:
            result[col] = ColumnClass(infer_type_from_column(col), col)
    return result


def find_relation(class_a: str, class_b: str, schema: Optional[OntologySchema], mappings: MappingSet) -> Optional[str]:
    """Name of a declared relationship between two classes (either direction), if any."""
    pair = {class_a, class_b}
    for prop in (schema.object_properties if schema else []):
        if {local_name(prop.domain), local_name(prop.range)} == pair:
            return prop.label or prop.name
    for rel in mappings.relationships.values():
        if rel.domain and rel.range and {rel.domain, rel.range} == pair:
            return rel.name
    return None


def _node_id(class_name: str, value: Any) -> str:
    return f"{class_name}_{value}"


class ContextGraphBuilder:
    """Builds the evidence graph and reasoning trace for one result set."""

    def build(
        self,
        columns: List[str],
        rows: List[List[Any]],
        schema: Optional[OntologySchema],
        mappings: MappingSet,
        sql: str = "",
        databases: Optional[List[str]] = None,
    ) -> ContextGraph:
        graph = ContextGraph(row_count=len(rows), databases=list(databases or []), sql=sql)
        if not rows:
            return graph

        col_classes = map_columns_to_classes(columns, mappings)
        nodes: Dict[str, GraphNode] = {}
        edges: Dict[Tuple[str, str, str], GraphEdge] = {}
        relation_cache: Dict[Tuple[str, str], Optional[str]] = {}

        for row in rows:
            # class -> [(column, value)] in column order
            by_class: Dict[str, List[Tuple[str, Any]]] = {}
            for col, value in zip(columns, row):
                if value is None:
                    continue
                by_class.setdefault(col_classes[col].class_name, []).append((col, value))

            row_nodes: Dict[str, str] = {}
            for class_name, values in by_class.items():
                id_values = [(c, v) for c, v in values if col_classes[c].is_id]
                key_col, key_value = (id_values or values)[0]
                info = col_classes[key_col]
                node_id = _node_id(class_name, key_value)
                node = nodes.get(node_id)
                if node is None:
                    node = GraphNode(
                        id=node_id,
                        type=class_name,
                        label=info.label,
                        value=str(key_value),
                        source=info.source_table,
                    )
                    nodes[node_id] = node
                for col, value in values:
                    node.properties[col] = value
                row_nodes[class_name] = node_id

            classes = list(row_nodes)
            for i, class_a in enumerate(classes):
                for class_b in classes[i + 1:]:
                    key = (class_a, class_b)
                    if key not in relation_cache:
                        relation_cache[key] = find_relation(class_a, class_b, schema, mappings)
                    relation = relation_cache[key]
                    if not relation:
                        continue
                    edge = GraphEdge(source=row_nodes[class_a], target=row_nodes[class_b], relation=relation)
                    edges.setdefault((edge.source, edge.target, edge.relation), edge)

        graph.nodes = list(nodes.values())
        graph.edges = list(edges.values())
        logger.debug(f"Context graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges from {len(rows)} rows")
        return graph

    def reasoning_trace(self, graph: ContextGraph) -> List[ReasoningTraceStep]:
        databases = list(graph.databases)
        if not graph.nodes:
            return [ReasoningTraceStep(step="Query returned no results", sources=databases)]

        trace = []
        cardinality = graph.cardinality
        summary = ", ".join(f"{count} {type_}(s)" for type_, count in cardinality.items())
        trace.append(
            ReasoningTraceStep(
                step=f"Identified entities: {summary}",
                evidence=[n.id for n in graph.nodes[:5]],
                sources=list(dict.fromkeys(n.source for n in graph.nodes if n.source)),
            )
        )

        if graph.edges:
            relations = list(dict.fromkeys(e.relation for e in graph.edges))
            trace.append(
                ReasoningTraceStep(
                    step=f"Traversed {len(graph.edges)} relationship(s): {', '.join(relations)}",
                    evidence=[f"{e.source}→{e.target}" for e in graph.edges[:5]],
                    sources=databases,
                )
            )

        if len(cardinality) > 1:
            trace.append(
                ReasoningTraceStep(
                    step=f"Entity traversal path: {' → '.join(cardinality)}",
                    evidence=list(cardinality),
                    sources=databases,
                )
            )

        trace.append(
            ReasoningTraceStep(
                step=(
                    f"Result: {graph.row_count} row(s) spanning {len(databases)} database(s), "
                    f"yielding {len(graph.nodes)} unique entities"
                ),
                evidence=[n.id for n in graph.nodes],
                sources=databases,
            )
        )
        return trace
