"""Generation agent adapters.

Steps never talk to a model directly. They call
:meth:`stagegate.workflow.StepContext.generate`, which delegates to whatever
:class:`GenerationAgent` the controller was constructed with.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from pydantic_ai import Agent

from .config import AgentConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class GenerationAgent(Protocol):
    """Turns a prompt into text. Slow, fallible and stateless."""

    async def generate(self, prompt: str) -> str:
        """Return the response text for ``prompt``."""


class PydanticAIGenerationAgent:
    """Adapter around a :class:`pydantic_ai.Agent` producing plain text."""

    def __init__(
        self,
        agent: Optional[Agent] = None,
        *,
        model: Any = None,
        instructions: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        if agent is None:
            if model is None:
                raise ValueError("Either an agent or a model must be provided")
            agent = Agent(model, output_type=str, instructions=instructions, name=name)
        self.agent = agent

    async def generate(self, prompt: str) -> str:
        logger.debug(f"Generating with agent {getattr(self.agent, 'name', None)!r}")
        result = await self.agent.run(prompt)
        return result.output


class CallableGenerationAgent:
    """Wrap a plain sync or async function as a generation agent.

    Handy for deterministic stubs in tests and local development.
    """

    def __init__(self, func: Callable[[str], Union[str, Awaitable[str]]]) -> None:
        self.func = func
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        result = self.func(prompt)
        if inspect.isawaitable(result):
            result = await result
        return result


def build_agent(config: AgentConfig) -> Optional[GenerationAgent]:
    """Create the configured generation agent, if any."""
    if not config.model:
        return None
    return PydanticAIGenerationAgent(
        model=config.model, instructions=config.instructions, name=config.name
    )
