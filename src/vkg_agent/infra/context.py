"""
Service context - process-wide clients created once at startup

Owns every long-lived handle (cache connection, Trino clients, SPARQL
client, chat models) and closes them in `aclose()`. Request handlers get
the context passed in; nothing here is a module-level singleton.
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger

from vkg_agent.catalog.registry import CatalogRegistry
from vkg_agent.infra.cache import KeyValueCache, create_cache
from vkg_agent.infra.trino import TrinoConnectionConfig, TrinoConnectionManager
from vkg_agent.llm.client import LangChainChatService, log_provider_status
from vkg_agent.ontology.store import OntologyRepository, SparqlClient, SparqlMappingStore, SparqlOntologyStore


@dataclass
class ServiceContext:
    settings: Any
    cache: KeyValueCache
    connections: TrinoConnectionManager
    catalog_registry: CatalogRegistry
    sparql: SparqlClient
    ontology_repository: OntologyRepository
    chat: Any  # LangChainChatService or any object with async chat(messages, options)

    @classmethod
    async def create(cls, settings, chat=None, trino_transport=None, sparql_transport=None) -> "ServiceContext":
        """
        Build all services from settings.

        `chat` and the httpx transports can be injected (tests, alternative
        providers); by default the configured LangChain model is used.
        """
        cache = await create_cache(settings)
        connections = TrinoConnectionManager(
            cache, TrinoConnectionConfig.from_settings(settings), transport=trino_transport
        )
        registry = CatalogRegistry(
            cache, connections, settings.trino_catalog_path, docker_host=settings.trino_docker_host
        )
        sparql = SparqlClient(
            settings.sparql_endpoint_url,
            settings.sparql_repository,
            timeout=settings.sparql_timeout_seconds,
            transport=sparql_transport,
        )
        repository = OntologyRepository(
            SparqlOntologyStore(sparql, settings.sparql_graph_base),
            SparqlMappingStore(sparql, settings.sparql_graph_base, settings.vkg_mapping_namespace),
            cache,
            ttl_seconds=settings.schema_cache_ttl_seconds,
        )
        if chat is None:
            log_provider_status()
            chat = LangChainChatService()

        logger.info(f"✅ Services ready (Trino: {settings.trino_url}, SPARQL: {settings.sparql_endpoint_url})")
        return cls(
            settings=settings,
            cache=cache,
            connections=connections,
            catalog_registry=registry,
            sparql=sparql,
            ontology_repository=repository,
            chat=chat,
        )

    async def aclose(self) -> None:
        """Close Trino clients, the SPARQL client and the cache connection."""
        await self.connections.close_all()
        await self.sparql.close()
        await self.cache.close()
        logger.info("✅ Services closed")
