"""
Schema filter - narrow the ontology to what has physical mappings
"""

from loguru import logger

from vkg_agent.ontology.models import MappingSet, OntologySchema


def filter_schema(schema: OntologySchema, mappings: MappingSet) -> OntologySchema:
    """
    Keep mapped classes, mapped properties, and properties whose domain is a mapped class.

    Classes match on name, label or IRI local name. With an empty mapping set
    (ontology not generated yet) the schema is returned unfiltered.
    """
    mapped_classes = set(mappings.classes)
    if not mapped_classes:
        return schema

    relationship_names = set(mappings.relationships)
    property_names = set(mappings.properties)

    filtered = OntologySchema(
        classes=[c for c in schema.classes if c.matches(mapped_classes)],
        object_properties=[
            p for p in schema.object_properties
            if {p.name, p.local_name} & relationship_names or p.domain in mapped_classes
        ],
        data_properties=[
            p for p in schema.data_properties
            if {p.name, p.local_name} & property_names or p.domain in mapped_classes
        ],
    )
    logger.debug(
        f"Schema filter: {len(schema.classes)}->{len(filtered.classes)} classes, "
        f"{len(schema.object_properties)}->{len(filtered.object_properties)} object props, "
        f"{len(schema.data_properties)}->{len(filtered.data_properties)} data props"
    )
    return filtered
