"""Unit tests for LLM utilities."""

import os
import pytest

from pydantic import BaseModel
from pydantic_ai import NativeOutput
from pydantic_ai.models.function import FunctionModel
from pydantic_ai.models.openai import OpenAIResponsesModel
from pydantic_ai.messages import ModelResponse, TextPart

from smartgrade.libs.llm import create_agent


def _echo(messages, info):
    return ModelResponse(parts=[TextPart("ok")])


class TestCreateAgent:
    """Test the create_agent function."""

    def test_create_agent_with_defaults(self):
        """Test creating agent with default configuration."""
        config_map = {
            "openai": {
                "api_key": "test-key",
                "organization": "test-org",
                "model": "gpt-4o",
                "pydantic_ai_settings": {}
            }
        }

        agent = create_agent(config_map)

        # Check that environment variables were set
        assert os.environ.get('OPENAI_API_KEY') == 'test-key'
        assert os.environ.get('OPENAI_ORG_ID') == 'test-org'

        assert agent is not None
        assert isinstance(agent.model, OpenAIResponsesModel)

    def test_create_agent_model_override(self):
        """Test that the model argument overrides the configured model."""
        configs = {
            "openai": {
                "api_key": "custom-key",
                "model": "gpt-4o"
            }
        }

        agent = create_agent(configs=configs, model="gpt-4.1-mini")

        assert os.environ.get('OPENAI_API_KEY') == 'custom-key'
        assert agent.model.model_name == "gpt-4.1-mini"

    def test_create_agent_with_model_instance(self):
        """Test that a ready pydantic-ai model skips OpenAI setup."""
        model = FunctionModel(_echo)

        agent = create_agent(configs={}, model=model)

        assert agent.model is model

    def test_create_agent_with_output_type(self):
        """Test creating an agent with a structured output type."""
        class Answer(BaseModel):
            value: int

        agent = create_agent(configs={}, model=FunctionModel(_echo), output_type=NativeOutput(Answer))

        assert agent is not None

    def test_create_agent_with_system_prompt(self):
        """Test creating agent with custom system prompt."""
        test_configs = {
            "openai": {
                "api_key": "test-key",
                "model": "gpt-4o"
            }
        }

        agent = create_agent(
            configs=test_configs,
            system_prompt="You are a careful exam grader."
        )

        assert agent is not None

    def test_create_agent_missing_api_key(self):
        """Test that missing openai config raises KeyError."""
        with pytest.raises(KeyError, match="Key.*not found.*"):
            create_agent({})

    def test_create_agent_empty_api_key(self, monkeypatch):
        """Test that an empty key without environment fallback raises ValueError."""
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        with pytest.raises(ValueError, match="API key"):
            create_agent({"openai": {"api_key": "", "model": "gpt-4o"}})

    def test_create_agent_with_settings_dict(self):
        """Test creating agent with custom settings dictionary."""
        test_configs = {
            "openai": {
                "api_key": "test-key",
                "model": "gpt-4o",
                "pydantic_ai_settings": {"max_tokens": 1000}
            }
        }

        agent = create_agent(
            configs=test_configs,
            settings_dict={"temperature": 0.2}
        )

        assert agent.model_settings["temperature"] == 0.2
        assert agent.model_settings["max_tokens"] == 1000
