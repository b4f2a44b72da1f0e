"""Fiction workflow example using stagegate.

Walks a run through both human gates. The generation agent uses pydantic-ai's
test model so the example runs without API keys; pass a real model name such
as ``"anthropic:claude-3-5-sonnet-latest"`` to generate actual prose.
"""

import asyncio

from pydantic_ai import Agent
from pydantic_ai.models.test import TestModel

from stagegate import PydanticAIGenerationAgent, RunController, get_repository
from stagegate.workflows import fiction_workflow

character = {
    "basicInfo": {"name": "Mara Vell", "role": "protagonist", "occupation": "cartographer"},
    "personality": {"traits": ["stubborn", "curious"]},
    "characterArc": {"startingState": "Guarded and alone"},
    "narrativeFunction": {"storyPurpose": "Maps the way home"},
}

writer = PydanticAIGenerationAgent(
    Agent(
        TestModel(custom_output_text="TITLE: The Shifting Streets\n\nChapter 1: Low Tide\n..."),
        output_type=str,
        name="fiction_writer",
    )
)


async def main():
    controller = RunController([fiction_workflow], agent=writer, repository=get_repository())

    result = await controller.start(fiction_workflow.id, character)
    print(f"{result.status.value} at {result.current_step_id}")
    print("Waiting for:", result.suspend_envelope["resumeConditions"]["requiredInputs"])

    result = await controller.resume(
        result.run_id, "collect-character-data", {"reviewStatus": "approved"}
    )
    print(f"{result.status.value} at {result.current_step_id}")

    result = await controller.resume(
        result.run_id,
        "collect-story-parameters",
        {
            "reviewStatus": "approved",
            "storyParameters": {
                "genre": "fantasy",
                "setting": "The Shattered Coast",
                "plotPremise": "A mapmaker charts a city that rearranges itself",
                "chapterCount": 1,
            },
        },
    )
    print("Persisted status:", result.status.value)
    print("Title:", result.final_result["title"])


if __name__ == "__main__":
    asyncio.run(main())
