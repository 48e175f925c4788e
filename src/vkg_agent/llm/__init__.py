"""
LLM module - chat model factory and response helpers
"""

from vkg_agent.llm.client import create_llm, LangChainChatService
from vkg_agent.llm.response_utils import extract_text_from_response, extract_json_object

__all__ = ["create_llm", "LangChainChatService", "extract_text_from_response", "extract_json_object"]
