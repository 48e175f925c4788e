"""
VKG federated query agent
"""

from vkg_agent.agents.vkg.agent import VKGQueryAgent
from vkg_agent.agents.vkg.explorer import DataExplorer, NO_RESULTS_MESSAGE
from vkg_agent.agents.vkg.models import AttemptRecord, PipelineStep, QueryPlan

__all__ = [
    "VKGQueryAgent",
    "DataExplorer",
    "NO_RESULTS_MESSAGE",
    "AttemptRecord",
    "PipelineStep",
    "QueryPlan",
]
