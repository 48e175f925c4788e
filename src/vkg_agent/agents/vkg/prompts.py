"""
Prompts and schema descriptions for the VKG agent

The generation prompt carries two blocks: the (filtered) ontology and the
table mappings. The mapping block lists the physical column for every
ontology property twice, once per table and once in a flat dictionary,
because models otherwise tend to write ontology property names as columns.
"""

from typing import Any, Dict, List

from vkg_agent.agents.vkg.models import AttemptRecord, feedback_history
from vkg_agent.ontology.models import MappingSet, OntologySchema, local_name

NO_ONTOLOGY = "No ontology schema available"
NO_MAPPINGS = "No mappings available"

PLAN_AND_SQL_SYSTEM_PROMPT = """You are a federated query planner for a virtual knowledge graph.
An ontology describes business entities; each entity is mapped to a table in a Trino catalog,
each property to a column, and each relationship to a JOIN condition.

Given the ontology, the table mappings and a question, produce:
1. an execution plan: which entities and relationships are needed, whether the question is
   answered from a single table (singleHop) and which aggregation, if any, is applied
2. one Trino SQL SELECT statement that answers the question

Rules:
- Reference tables ONLY by the fully-qualified 3-part names (catalog.schema.table) shown in TABLE MAPPINGS.
- Use ONLY the column names listed under SQL COLUMNS / COLUMN DICTIONARY, never ontology property names.
- Join tables ONLY with the conditions listed under JOINS.
- Give every table a short alias and qualify every column with it.
- For text filters use LOWER(alias.column) LIKE '%value%' unless an exact value is given.
- Read-only: SELECT or WITH only.

Respond with ONLY a JSON object:
{
  "plan": {
    "entities": ["Customer", "Transaction"],
    "relationships": ["hasTransaction"],
    "singleHop": false,
    "aggregation": null,
    "reasoning": "one sentence"
  },
  "sql": "SELECT ..."
}"""

ANSWER_SYSTEM_PROMPT = """You are a helpful data analyst answering questions from federated query results.
Answer conversationally and concisely using only the data provided. Mention concrete values
(names, amounts, dates) from the results, summarize when there are many rows, and say so
plainly when the data does not fully answer the question. Do not mention SQL or table names
unless the user asked about them."""

EXPLORATION_SYSTEM_PROMPT = (
    "You are a helpful data analyst. The user's query returned 0 results. You have exploration data "
    "showing what values actually exist in the database. Explain clearly: (1) the query found no matching "
    "data, (2) show what values DO exist so the user can refine their question. Be concise and helpful."
)

_XSD_TO_SQL = {
    "string": "varchar",
    "integer": "integer",
    "int": "integer",
    "long": "bigint",
    "bigint": "bigint",
    "decimal": "decimal",
    "float": "real",
    "double": "double",
    "boolean": "boolean",
    "date": "date",
    "datetime": "timestamp",
    "datetype": "timestamp",
    "time": "time",
}


def xsd_to_sql_hint(xsd_type: str) -> str:
    """xsd:decimal -> 'decimal'; unknown types give ''."""
    if not xsd_type:
        return ""
    return _XSD_TO_SQL.get(local_name(xsd_type).split(":")[-1].lower(), "")


def describe_ontology(schema: OntologySchema) -> str:
    lines: List[str] = []
    if schema.classes:
        lines.append("Classes:")
        lines.extend(f"  - {c.label or c.name}" for c in schema.classes)
    if schema.object_properties:
        lines.append("Relationships:")
        lines.extend(
            f"  - {p.label or p.name}: {p.domain or '?'} → {p.range or '?'}" for p in schema.object_properties
        )
    if schema.data_properties:
        lines.append("Properties:")
        lines.extend(
            f"  - {p.label or p.name} ({p.domain or '?'}): {p.range or 'string'}" for p in schema.data_properties
        )
    return "\n".join(lines) or NO_ONTOLOGY


def describe_mappings(schema: OntologySchema, mappings: MappingSet) -> str:
    """Per-table column listing, join conditions and the property -> column dictionary."""
    if not (mappings.classes or mappings.properties or mappings.relationships):
        return NO_MAPPINGS

    data_props = {(p.label or p.name): p for p in schema.data_properties}
    object_props = {(p.label or p.name): p for p in schema.object_properties}

    props_by_class: Dict[str, List[Any]] = {}
    for name, prop in mappings.properties.items():
        declared = data_props.get(name)
        domain = (declared.domain if declared else "") or prop.domain or "Unknown"
        props_by_class.setdefault(domain, []).append(prop)

    lines: List[str] = []
    for class_name, mapping in mappings.classes.items():
        lines.append(f"TABLE: {mapping.source_table or 'unknown'}  (entity: {class_name})")
        lines.append(f"  PRIMARY KEY: {mapping.source_id_column or '?'}")
        props = props_by_class.get(class_name, [])
        if props:
            lines.append("  SQL COLUMNS (use ONLY these exact column names in queries):")
            for prop in props:
                declared = data_props.get(prop.name)
                sql_type = xsd_to_sql_hint((declared.range if declared else "") or prop.range)
                type_hint = f" ({sql_type})" if sql_type else ""
                lines.append(f"    - {prop.source_column or prop.name}{type_hint}    [ontology: {prop.name}]")
        lines.append("")

    if mappings.relationships:
        lines.append("JOINS (use these exact JOIN conditions):")
        for name, rel in mappings.relationships.items():
            declared = object_props.get(name)
            domain = (declared.domain if declared else "") or rel.domain or "?"
            range_ = (declared.range if declared else "") or rel.range or "?"
            lines.append(f"  {name}: {domain} → {range_} ON {rel.join_sql or '?'}")

    lines.append("")
    lines.append("COLUMN DICTIONARY (ontology property → actual SQL column):")
    for name, prop in mappings.properties.items():
        column = prop.source_column or name
        if column != name:
            lines.append(f'  {name} → USE "{column}" (NOT "{name}")')
        else:
            lines.append(f'  {name} → "{column}"')
    return "\n".join(lines)


def build_context(schema: OntologySchema, mappings: MappingSet) -> str:
    return "\n".join(
        [
            "=== ONTOLOGY (classes, properties, relationships) ===",
            describe_ontology(schema),
            "",
            "=== TABLE MAPPINGS (ontology → Trino tables/columns) ===",
            describe_mappings(schema, mappings),
        ]
    )


def build_generation_messages(
    question: str, schema: OntologySchema, mappings: MappingSet, attempts: List[AttemptRecord]
) -> List[Dict[str, str]]:
    """System prompt, schema context + question, then one feedback exchange per failed attempt."""
    return [
        {"role": "system", "content": PLAN_AND_SQL_SYSTEM_PROMPT},
        {"role": "user", "content": f"{build_context(schema, mappings)}\n\nQuestion: {question}"},
        *feedback_history(attempts),
    ]


def summarize_rows(columns: List[str], rows: List[List[Any]], row_count: int, sample_rows: int = 20) -> str:
    lines = [f"Columns: {', '.join(columns)}", f"Total rows: {row_count}", "", "Sample data:"]
    for row in rows[:sample_rows]:
        lines.append(", ".join(f"{col}={value}" for col, value in zip(columns, row)))
    return "\n".join(lines)


def build_answer_messages(question: str, summary: str, node_count: int, edge_count: int) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Question: {question}\n\nQuery Results:\n{summary}\n\n"
                f"Graph: {node_count} entities, {edge_count} relationships\n\n"
                f"Generate a conversational answer:"
            ),
        },
    ]


def build_exploration_messages(question: str, sql: str, exploration: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": EXPLORATION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Question: {question}\n\nOriginal SQL: {sql}\n\nThe query returned 0 rows.\n\n"
                f"Exploration of available data:\n{exploration}\n\n"
                f"Explain what happened and show the user what data is available:"
            ),
        },
    ]
