"""
Tests for the LangChain chat service wrapper and model factory.
"""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from vkg_agent.config.settings import settings
from vkg_agent.llm.client import LangChainChatService, create_llm, to_langchain_messages
from vkg_agent.utils.errors import ConfigurationError


class RecordingModel:
    def __init__(self, temperature):
        self.temperature = temperature
        self.received = []

    async def ainvoke(self, messages):
        self.received.append(messages)
        return AIMessage(content=[{"type": "reasoning", "text": "hmm"}, {"type": "text", "text": "SELECT 1"}])


def test_roles_map_to_message_classes():
    converted = to_langchain_messages(
        [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "question"},
            {"role": "assistant", "content": "{}"},
            {"role": "tool", "content": "odd"},
        ]
    )

    assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]


@pytest.mark.asyncio
async def test_one_model_per_temperature():
    built = []

    def factory(temperature):
        model = RecordingModel(temperature)
        built.append(model)
        return model

    service = LangChainChatService(llm_factory=factory)

    assert await service.chat([{"role": "user", "content": "a"}], {"temperature": 0.1}) == "SELECT 1"
    await service.chat([{"role": "user", "content": "b"}], {"temperature": 0.1})
    await service.chat([{"role": "user", "content": "c"}], {"temperature": 0.3})

    assert [m.temperature for m in built] == [0.1, 0.3]
    assert len(built[0].received) == 2


def test_unknown_provider_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "llm_provider", "bard")

    with pytest.raises(ConfigurationError, match="Unsupported LLM provider: bard"):
        create_llm()


def test_openai_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings, "llm_provider", "openai")
    monkeypatch.setattr(settings, "openai_api_key", "")

    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        create_llm()
