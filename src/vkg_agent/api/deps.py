"""
Request-scoped dependencies
"""

from typing import Optional

from fastapi import Header, Request

from vkg_agent.agents.vkg import VKGQueryAgent
from vkg_agent.infra.context import ServiceContext


def get_services(request: Request) -> ServiceContext:
    return request.app.state.services


def get_agent(request: Request) -> VKGQueryAgent:
    return request.app.state.agent


def get_tenant_id(x_tenant_id: Optional[str] = Header(default=None)) -> str:
    return x_tenant_id or "default"


def get_workspace_id(x_workspace_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_workspace_id
