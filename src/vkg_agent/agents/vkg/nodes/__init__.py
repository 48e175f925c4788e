"""
VKG workflow nodes
"""

from vkg_agent.agents.vkg.nodes.context_loader import load_context_node
from vkg_agent.agents.vkg.nodes.generator import generate_plan_sql_node
from vkg_agent.agents.vkg.nodes.validator import validate_sql_node
from vkg_agent.agents.vkg.nodes.executor import execute_node
from vkg_agent.agents.vkg.nodes.graph_builder import build_graph_node
from vkg_agent.agents.vkg.nodes.answer import generate_answer_node

__all__ = [
    "load_context_node",
    "generate_plan_sql_node",
    "validate_sql_node",
    "execute_node",
    "build_graph_node",
    "generate_answer_node",
]
