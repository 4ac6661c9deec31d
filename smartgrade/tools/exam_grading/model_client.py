"""Model invocation interface and its pydantic-ai implementation."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type, Union

from pydantic import BaseModel
from pydantic_ai import BinaryContent, NativeOutput, PromptedOutput, ToolOutput
from pydantic_ai.exceptions import UnexpectedModelBehavior
from pydantic_ai.models import Model

from smartgrade.libs.config_loader import ConfigType, get_config
from smartgrade.libs.llm import create_agent
from .errors import MalformedResult, ProviderError
from .request_composer import ImageSegment, Segment, TextSegment

LOG = logging.getLogger(__name__)

OUTPUT_MARKERS = {
    "native": NativeOutput,
    "prompted": PromptedOutput,
    "tool": ToolOutput,
}


@dataclass
class ModelReply:
    """Raw text returned by the model."""
    text: str


class ModelClient(Protocol):
    """Anything that can send segments to a multimodal model."""

    async def invoke(self,
                     segments: Sequence[Segment],
                     response_schema: Optional[Type[BaseModel]] = None,
                     temperature: Optional[float] = None) -> ModelReply:
        ...


def to_user_content(segments: Sequence[Segment]) -> List[Union[str, BinaryContent]]:
    """Convert segments to pydantic-ai user prompt parts, preserving order."""
    content: List[Union[str, BinaryContent]] = []
    for segment in segments:
        if isinstance(segment, TextSegment):
            content.append(segment.text)
        elif isinstance(segment, ImageSegment):
            content.append(BinaryContent(data=segment.image.to_bytes(),
                                         media_type=segment.image.mime_type))
        else:
            raise TypeError(f"Unknown segment type: {type(segment).__name__}")
    return content


class PydanticAIModelClient:
    """Invoke an OpenAI model (or any pydantic-ai Model) through pydantic-ai agents."""

    def __init__(self, configs: ConfigType,
                 model: Optional[Union[str, Model]] = None,
                 settings: Optional[Dict[str, Any]] = None):
        """
        Args:
            configs: Configuration dictionary (required)
            model: Model name or pydantic-ai Model (overrides config value)
            settings: Pydantic AI settings dict (overrides config values)
        """
        self.configs = configs
        self.model = model
        self.settings = settings

        mode = get_config("grading.structured_output", configs, default="native")
        if mode not in OUTPUT_MARKERS:
            raise ValueError(f"Unknown structured output mode {mode!r}; "
                             f"expected one of {sorted(OUTPUT_MARKERS)}")
        self.output_marker = OUTPUT_MARKERS[mode]

        # Agents are created lazily, one per output type
        self._agents: Dict[Any, Any] = {}

    def _agent_for(self, response_schema: Optional[Type[BaseModel]]):
        key = response_schema or str
        if key not in self._agents:
            output_type = self.output_marker(response_schema) if response_schema else str
            self._agents[key] = create_agent(
                configs=self.configs,
                model=self.model,
                settings_dict=self.settings,
                output_type=output_type,
            )
        return self._agents[key]

    async def invoke(self,
                     segments: Sequence[Segment],
                     response_schema: Optional[Type[BaseModel]] = None,
                     temperature: Optional[float] = None) -> ModelReply:
        """
        Send segments to the model.

        With a response schema the validated output is returned as JSON text
        using the schema's wire (alias) names; otherwise the raw model text.

        Raises:
            MalformedResult: If a schema-constrained output fails validation
            ProviderError: On any transport, auth, quota or provider failure
        """
        agent = self._agent_for(response_schema)
        prompt = to_user_content(segments)
        model_settings = {"temperature": temperature} if temperature is not None else None

        try:
            result = await agent.run(prompt, model_settings=model_settings)
        except UnexpectedModelBehavior as e:
            LOG.error("Model output could not be used: %s", e)
            if response_schema is not None:
                raise MalformedResult(str(e)) from e
            raise ProviderError(str(e)) from e
        except Exception as e:  # pylint: disable=broad-except
            LOG.error("Model invocation failed: %s", e)
            raise ProviderError(str(e)) from e

        output = result.output
        if response_schema is not None:
            return ModelReply(text=output.model_dump_json(by_alias=True))
        return ModelReply(text=str(output))
