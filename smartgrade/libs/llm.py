"""LLM utilities for creating and configuring AI agents."""


import logging
import os
from typing import Optional, Dict, Any, Union

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIResponsesModel, OpenAIResponsesModelSettings

from smartgrade.libs.config_loader import ConfigType, get_config


# Fix up logging level for httpx to WARNING to reduce noise
logging.getLogger("httpx").setLevel(logging.WARNING)

LOG = logging.getLogger(__name__)


def create_agent(configs: ConfigType,
                 model: Optional[Union[str, Model]] = None,
                 settings_dict: Optional[Dict[str, Any]] = None,
                 system_prompt: Optional[str] = None,
                 output_type: Any = str) -> Agent:
    """
    Create a pydantic-ai Agent configured with OpenAI models.

    Args:
        configs: Configuration dictionary (required)
        model: Model name (overrides config value) or a ready pydantic-ai Model
        settings_dict: Pydantic AI settings dict (overrides config values)
        system_prompt: System prompt for the agent (optional)
        output_type: Output type or output marker (e.g. NativeOutput) for the agent

    Returns:
        Configured Agent

    Raises:
        KeyError: If the openai section is missing from config
        ValueError: If no OpenAI API key is configured
    """
    base_settings = get_config("openai.pydantic_ai_settings", configs, default={}) or {}
    settings_dict = base_settings | (settings_dict or {})

    if isinstance(model, Model):
        llm_model = model
    else:
        api_key = get_config("openai.api_key", configs) or os.environ.get('OPENAI_API_KEY')
        if not api_key:
            raise ValueError("OpenAI API key is not configured (openai.api_key)")
        organization = get_config("openai.organization", configs, default=None)
        model = model or get_config("openai.model", configs)

        os.environ['OPENAI_API_KEY'] = api_key
        if organization:
            os.environ['OPENAI_ORG_ID'] = organization
        llm_model = OpenAIResponsesModel(model)
        LOG.debug("Created OpenAI responses model %s", model)

    model_settings = OpenAIResponsesModelSettings(**settings_dict) if settings_dict else None
    if system_prompt:
        agent = Agent(
            model=llm_model,
            model_settings=model_settings,
            system_prompt=system_prompt,
            output_type=output_type,
            retries=0,
        )
    else:
        agent = Agent(
            model=llm_model,
            model_settings=model_settings,
            output_type=output_type,
            retries=0,
        )
    return agent
