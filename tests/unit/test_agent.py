"""Tests for generation agent adapters and StepContext.generate."""

import pytest
from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.models.test import TestModel as StubModel

from stagegate import AgentFailure, CallableGenerationAgent, GenerationAgent, PydanticAIGenerationAgent
from stagegate.workflow import StepContext


class Text(BaseModel):
    text: str


def _context(agent=None):
    return StepContext(
        run_id="r1",
        workflow_id="wf",
        step_id="write",
        step_index=0,
        input_data={"text": "hello"},
        resume_data=None,
        input_shape=Text,
        agent=agent,
    )


@pytest.mark.asyncio
async def test_callable_agent_records_prompts():
    agent = CallableGenerationAgent(lambda prompt: prompt.upper())

    assert isinstance(agent, GenerationAgent)
    assert await agent.generate("hi") == "HI"
    assert agent.prompts == ["hi"]


@pytest.mark.asyncio
async def test_callable_agent_awaits_coroutines():
    async def respond(prompt):
        return f"async {prompt}"

    agent = CallableGenerationAgent(respond)
    assert await agent.generate("hi") == "async hi"


@pytest.mark.asyncio
async def test_pydantic_ai_agent_returns_text():
    agent = PydanticAIGenerationAgent(
        Agent(StubModel(custom_output_text="Once upon a time"), output_type=str)
    )
    assert await agent.generate("Tell a story") == "Once upon a time"


def test_pydantic_ai_agent_needs_agent_or_model():
    with pytest.raises(ValueError):
        PydanticAIGenerationAgent()


@pytest.mark.asyncio
async def test_context_generate_passes_text_through():
    ctx = _context(CallableGenerationAgent(lambda prompt: "generated"))
    assert await ctx.generate("prompt") == "generated"
    assert ctx.input == Text(text="hello")
    assert ctx.resume is None
    assert not ctx.is_resuming


@pytest.mark.asyncio
async def test_context_generate_without_agent():
    with pytest.raises(AgentFailure, match="No generation agent configured"):
        await _context().generate("prompt")


@pytest.mark.asyncio
async def test_context_generate_wraps_agent_errors():
    def explode(prompt):
        raise TimeoutError("model timed out")

    with pytest.raises(AgentFailure) as excinfo:
        await _context(CallableGenerationAgent(explode)).generate("prompt")

    err = excinfo.value
    assert err.step_id == "write"
    assert err.details["error_type"] == "TimeoutError"
    assert "model timed out" in err.message
    assert isinstance(err.__cause__, TimeoutError)


@pytest.mark.asyncio
@pytest.mark.parametrize("response", ["", "   ", None, {"text": "not a string"}])
async def test_context_generate_rejects_empty_or_non_text(response):
    with pytest.raises(AgentFailure):
        await _context(CallableGenerationAgent(lambda prompt: response)).generate("prompt")
