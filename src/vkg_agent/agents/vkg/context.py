"""
VKG agent context - dependencies for workflow nodes
"""

from dataclasses import dataclass
from typing import Any, Optional

from vkg_agent.graph.context_graph import ContextGraphBuilder
from vkg_agent.sql.validator import SQLValidator


@dataclass
class VKGContext:
    """Context holding dependencies for VKG workflow nodes"""

    repository: Any  # OntologyRepository
    resolver: Any  # MappingResolver
    join_augmenter: Any  # JoinAugmenter
    validator: SQLValidator
    executor: Any  # TrinoConnectionManager (get_client(workspace_id) -> TrinoClient)
    graph_builder: ContextGraphBuilder
    chat: Any  # chat service: async chat(messages, options) -> str
    explorer: Any  # DataExplorer
    drift_detector: Optional[Any] = None  # SchemaDriftDetector
    max_attempts: int = 3
    row_limit: int = 1000
    generation_temperature: float = 0.1
    answer_temperature: float = 0.3
    answer_sample_rows: int = 20
    query_mode: str = "vkg_federated"
