"""
Ontology and mapping annotation stores

Both read from a SPARQL endpoint (GraphDB repository layout). The
OntologyRepository in front of them is a read-through cache keyed by
(tenant, workspace); recomputation is a pure function of that key, so
concurrent misses only cost a redundant load.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

import httpx
from loguru import logger

from vkg_agent.ontology.models import MappingSet, OntologyClass, OntologyProperty, OntologySchema, local_name

SCHEMA_KEY_PREFIX = "vkg:ontology-schema:v2"
MAPPINGS_KEY_PREFIX = "vkg:mappings:v2"

RDFS = "http://www.w3.org/2000/01/rdf-schema#"

_PREFIXES = """
PREFIX owl: <http://www.w3.org/2002/07/owl#>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
"""


class OntologyStore(Protocol):
    async def get_classes(self, tenant_id: str, workspace_id: str, scope: Optional[Dict] = None) -> List[Dict[str, Any]]: ...

    async def get_object_properties(self, tenant_id: str, workspace_id: str, scope: Optional[Dict] = None) -> List[Dict[str, Any]]: ...

    async def get_data_properties(self, tenant_id: str, workspace_id: str, scope: Optional[Dict] = None) -> List[Dict[str, Any]]: ...


class MappingStore(Protocol):
    async def get_mapping_annotations(
        self, tenant_id: str, workspace_id: str, workspace_name: Optional[str] = None
    ) -> Dict[str, Any]: ...


class SparqlClient:
    """Minimal SPARQL 1.1 protocol client returning result bindings."""

    def __init__(self, endpoint_url: str, repository: str, timeout: float = 15.0, transport=None):
        self.query_url = f"{endpoint_url.rstrip('/')}/repositories/{repository}"
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def select(self, query: str) -> List[Dict[str, Any]]:
        response = await self._http.post(
            self.query_url,
            data={"query": query},
            headers={"Accept": "application/sparql-results+json"},
        )
        response.raise_for_status()
        return response.json().get("results", {}).get("bindings", [])

    async def close(self) -> None:
        await self._http.aclose()


def _value(binding: Dict[str, Any], name: str) -> str:
    return (binding.get(name) or {}).get("value", "")


class SparqlOntologyStore:
    """Reads owl:Class / owl:ObjectProperty / owl:DatatypeProperty from workspace ontology graphs."""

    def __init__(self, client: SparqlClient, graph_base: str):
        self.client = client
        self.graph_base = graph_base.rstrip("/")

    def _graph_prefix(self, tenant_id: str, workspace_id: str, scope: Optional[Dict]) -> str:
        slug = (scope or {}).get("workspace_name") or workspace_id
        return f"{self.graph_base}/tenant/{tenant_id}/workspace/{slug}/ontology/"

    async def _select_typed(self, rdf_type: str, tenant_id: str, workspace_id: str, scope: Optional[Dict]) -> List[Dict[str, Any]]:
        query = f"""{_PREFIXES}
        SELECT DISTINCT ?iri ?label ?comment ?domain ?range WHERE {{
          GRAPH ?g {{
            ?iri a {rdf_type} .
            OPTIONAL {{ ?iri rdfs:label ?label }}
            OPTIONAL {{ ?iri rdfs:comment ?comment }}
            OPTIONAL {{ ?iri rdfs:domain ?domain }}
            OPTIONAL {{ ?iri rdfs:range ?range }}
          }}
          FILTER(STRSTARTS(STR(?g), "{self._graph_prefix(tenant_id, workspace_id, scope)}"))
        }}"""
        rows = []
        for binding in await self.client.select(query):
            iri = _value(binding, "iri")
            rows.append(
                {
                    "iri": iri,
                    "name": local_name(iri),
                    "label": _value(binding, "label") or local_name(iri),
                    "comment": _value(binding, "comment"),
                    "domain": local_name(_value(binding, "domain")),
                    "range": local_name(_value(binding, "range")),
                }
            )
        return rows

    async def get_classes(self, tenant_id, workspace_id, scope=None):
        return await self._select_typed("owl:Class", tenant_id, workspace_id, scope)

    async def get_object_properties(self, tenant_id, workspace_id, scope=None):
        return await self._select_typed("owl:ObjectProperty", tenant_id, workspace_id, scope)

    async def get_data_properties(self, tenant_id, workspace_id, scope=None):
        return await self._select_typed("owl:DatatypeProperty", tenant_id, workspace_id, scope)


def build_mappings(bindings: List[Dict[str, Any]], namespace: str) -> Dict[str, Any]:
    """
    Group (subject, predicate, object) bindings into the mapping annotation shape.

    sourceColumn marks a data property, joinSQL a relationship, anything else
    (sourceTable, sourceIdColumn) a class. A subject carrying sourceColumn and
    sourceTable is a property whose table is recorded on the property itself.
    rdfs:domain / rdfs:range are attached to whichever entry the subject ends up in.
    """
    mappings: Dict[str, Dict[str, Dict[str, str]]] = {"classes": {}, "properties": {}, "relationships": {}}
    typing: Dict[str, Dict[str, str]] = {}

    for binding in bindings:
        subject = local_name(_value(binding, "subject"))
        predicate_iri = _value(binding, "predicate")
        obj = _value(binding, "object")
        if not subject:
            continue

        if predicate_iri in (f"{RDFS}domain", f"{RDFS}range"):
            typing.setdefault(subject, {})[local_name(predicate_iri)] = local_name(obj)
            continue

        predicate = predicate_iri.replace(namespace, "")
        if predicate == "joinSQL":
            bucket = "relationships"
        elif predicate == "sourceColumn":
            bucket = "properties"
        else:
            bucket = "classes"
        mappings[bucket].setdefault(subject, {})[predicate] = obj

    for name in list(mappings["properties"]):
        if name in mappings["classes"]:
            mappings["properties"][name].update(mappings["classes"].pop(name))

    for subject, attrs in typing.items():
        for bucket in ("properties", "relationships"):
            if subject in mappings[bucket]:
                mappings[bucket][subject].update(attrs)
    return mappings


class SparqlMappingStore:
    """Reads vkgmap: mapping annotations (plus domain/range) from workspace graphs."""

    def __init__(self, client: SparqlClient, graph_base: str, namespace: str):
        self.client = client
        self.graph_base = graph_base.rstrip("/")
        self.namespace = namespace

    async def get_mapping_annotations(self, tenant_id, workspace_id, workspace_name=None):
        graph_prefix = f"{self.graph_base}/tenant/{tenant_id}/workspace/{workspace_name or workspace_id}/ontology/"
        query = f"""{_PREFIXES}
        SELECT ?subject ?predicate ?object WHERE {{
          GRAPH ?g {{
            {{
              ?subject ?predicate ?object .
              FILTER(STRSTARTS(STR(?predicate), "{self.namespace}"))
            }} UNION {{
              ?subject ?m ?any .
              FILTER(STRSTARTS(STR(?m), "{self.namespace}"))
              ?subject ?predicate ?object .
              FILTER(?predicate IN (rdfs:domain, rdfs:range))
            }}
          }}
          FILTER(STRSTARTS(STR(?g), "{graph_prefix}"))
        }}"""
        return build_mappings(await self.client.select(query), self.namespace)


class OntologyRepository:
    """
    Read-through cache over the ontology and mapping stores.

    Cache keys:
        vkg:ontology-schema:v2:{tenant}:{workspace}
        vkg:mappings:v2:{tenant}:{workspace}
    """

    def __init__(self, ontology_store: OntologyStore, mapping_store: MappingStore, cache, ttl_seconds: int = 600):
        self.ontology_store = ontology_store
        self.mapping_store = mapping_store
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def _soft(self, label: str, coro) -> List[Dict[str, Any]]:
        try:
            return await coro
        except Exception as e:
            logger.warning(f"Failed to load {label}: {e}")
            return []

    async def load_schema(self, tenant_id: str, workspace_id: str, workspace_name: Optional[str] = None) -> OntologySchema:
        key = f"{SCHEMA_KEY_PREFIX}:{tenant_id}:{workspace_id}"
        cached = await self.cache.get(key)
        if cached:
            logger.debug(f"Ontology schema cache HIT ({len(cached.get('classes', []))} classes)")
            return OntologySchema.from_dict(cached)

        scope = {"workspace_name": workspace_name} if workspace_name else None
        classes, object_props, data_props = await asyncio.gather(
            self._soft("classes", self.ontology_store.get_classes(tenant_id, workspace_id, scope)),
            self._soft("object properties", self.ontology_store.get_object_properties(tenant_id, workspace_id, scope)),
            self._soft("data properties", self.ontology_store.get_data_properties(tenant_id, workspace_id, scope)),
        )
        schema = OntologySchema(
            classes=[OntologyClass.from_dict(c) for c in classes],
            object_properties=[OntologyProperty.from_dict(p) for p in object_props],
            data_properties=[OntologyProperty.from_dict(p) for p in data_props],
        )
        await self.cache.set(key, schema.to_dict(), ttl=self.ttl_seconds)
        return schema

    async def load_mappings(self, tenant_id: str, workspace_id: str, workspace_name: Optional[str] = None) -> MappingSet:
        key = f"{MAPPINGS_KEY_PREFIX}:{tenant_id}:{workspace_id}"
        cached = await self.cache.get(key)
        if cached:
            return MappingSet.from_dict(cached)

        try:
            raw = await self.mapping_store.get_mapping_annotations(tenant_id, workspace_id, workspace_name)
        except Exception as e:
            logger.warning(f"Failed to load VKG mappings: {e}")
            return MappingSet()

        mappings = MappingSet.from_dict(raw)
        logger.info(
            f"🗺️  Mappings loaded: {len(mappings.classes)} classes, "
            f"{len(mappings.properties)} props, {len(mappings.relationships)} rels"
        )
        await self.cache.set(key, mappings.to_dict(), ttl=self.ttl_seconds)
        return mappings

    async def invalidate(self, tenant_id: str, workspace_id: str) -> None:
        await self.cache.delete(f"{SCHEMA_KEY_PREFIX}:{tenant_id}:{workspace_id}")
        await self.cache.delete(f"{MAPPINGS_KEY_PREFIX}:{tenant_id}:{workspace_id}")
        logger.info(f"Ontology cache invalidated for {tenant_id}/{workspace_id}")
