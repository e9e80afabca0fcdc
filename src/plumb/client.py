"""Model client used by the behavioral phase.

Any object with an async ``request(prompt, model, max_tokens)`` method that
returns a :class:`ModelReply` (or raises :class:`ModelClientError`) can be
passed to the harness. :class:`AgentModelClient` is the default, backed by a
pydantic-ai ``Agent`` so every provider pydantic-ai supports works here.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

import logfire
from pydantic_ai import Agent
from pydantic_ai.messages import ModelResponse, TextPart
from pydantic_ai.settings import ModelSettings

from .errors import ModelClientError


@dataclass
class ModelReply:
    text_segments: List[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.text_segments)


class ModelClient(Protocol):
    async def request(self, prompt: str, model: str, max_tokens: int) -> ModelReply: ...


class AgentModelClient:
    """Send a single user prompt through a pydantic-ai Agent.

    Args:
        model: Default model id or pydantic-ai ``Model`` instance. The ``model``
            argument of :meth:`request` takes precedence when given.
    """

    def __init__(self, model: Optional[Any] = None):
        self.model = model
        self._agent: Optional[Agent[None, str]] = None

    @property
    def agent(self) -> Agent[None, str]:
        if self._agent is None:
            self._agent = Agent(self.model, output_type=str)
        return self._agent

    def _resolve_model(self, model: Optional[Any]) -> Any:
        # a Model instance (e.g. TestModel) wins over model ids
        if self.model is not None and not isinstance(self.model, str):
            return self.model
        return model or self.model

    async def request(self, prompt: str, model: Optional[Any], max_tokens: int) -> ModelReply:
        target = self._resolve_model(model)
        with logfire.span("model request", model=str(target), max_tokens=max_tokens):
            try:
                result = await self.agent.run(
                    prompt,
                    model=target,
                    model_settings=ModelSettings(max_tokens=max_tokens),
                )
                return _reply_from_result(result)
            except Exception as e:
                logfire.error("Model request failed", model=str(target), error=str(e))
                raise ModelClientError(f"{type(e).__name__}: {e}") from e


def _reply_from_result(result: Any) -> ModelReply:
    segments = [
        part.content
        for message in result.new_messages()
        if isinstance(message, ModelResponse)
        for part in message.parts
        if isinstance(part, TextPart)
    ]
    # usage is a method on pydantic-ai 1.x results and a property on 2.x
    usage = result.usage() if callable(result.usage) else result.usage
    return ModelReply(
        text_segments=segments,
        input_tokens=usage.input_tokens or 0,
        output_tokens=usage.output_tokens or 0,
    )
