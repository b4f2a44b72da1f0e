"""Fiction generation workflow.

Four steps with two human gates::

    collect-character-data   (suspends until the character is approved)
    build-character-profile  (generation agent)
    collect-story-parameters (suspends until story parameters are supplied)
    generate-fiction-story   (generation agent)
"""

from __future__ import annotations

import logging
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..contracts import (
    Continue,
    RequiredAction,
    ResumeConditions,
    StateSnapshot,
    SuspendContext,
    SuspendEnvelope,
)
from ..workflow import StepContext, WorkflowDefinition, step
from .prompts import character_profile_prompt, story_prompt

logger = logging.getLogger(__name__)

WORKFLOW_ID = "fiction-generation-workflow"
STEP_IDS = (
    "collect-character-data",
    "build-character-profile",
    "collect-story-parameters",
    "generate-fiction-story",
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------------------------------------------------
# Character input

Role = Literal[
    "protagonist", "antagonist", "supporting", "minor", "mentor", "foil", "sidekick", "other"
]


class BasicInfo(CamelModel):
    name: str
    role: Role
    age: Optional[int] = Field(default=None, ge=0)
    gender: Optional[str] = None
    occupation: Optional[str] = None
    background: Optional[str] = None


class Personality(CamelModel):
    traits: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    flaws: List[str] = Field(default_factory=list)
    fears: List[str] = Field(default_factory=list)
    desires: List[str] = Field(default_factory=list)
    internal_conflicts: List[str] = Field(default_factory=list)


class Motivations(CamelModel):
    short_term_goals: List[str] = Field(default_factory=list)
    long_term_goals: List[str] = Field(default_factory=list)
    driving_force: Optional[str] = None


class Backstory(CamelModel):
    origin: Optional[str] = None
    key_life_events: List[str] = Field(default_factory=list)
    trauma_or_turning_points: List[str] = Field(default_factory=list)
    relationships_influence: List[str] = Field(default_factory=list)


class Relationship(CamelModel):
    character_name: str
    relationship_type: str
    emotional_dynamic: Optional[str] = None
    conflict_level: Optional[Literal["low", "medium", "high"]] = None


class CharacterArc(CamelModel):
    starting_state: str
    challenges: List[str] = Field(default_factory=list)
    transformation: Optional[str] = None
    ending_state: Optional[str] = None


class DialogueStyle(CamelModel):
    tone: Optional[str] = None
    speech_patterns: List[str] = Field(default_factory=list)
    vocabulary_level: Optional[
        Literal["simple", "casual", "formal", "technical", "poetic"]
    ] = None


class NarrativeFunction(CamelModel):
    story_purpose: str
    themes_represented: List[str] = Field(default_factory=list)
    key_conflicts_involved: List[str] = Field(default_factory=list)


class CharacterMetadata(CamelModel):
    genre: Optional[str] = None
    world_setting: Optional[str] = None
    notes: Optional[str] = None


class CharacterDevelopment(CamelModel):
    """Structured description of the main character."""

    character_id: Optional[str] = None
    basic_info: BasicInfo
    personality: Personality = Field(default_factory=Personality)
    motivations: Motivations = Field(default_factory=Motivations)
    backstory: Backstory = Field(default_factory=Backstory)
    relationships: List[Relationship] = Field(default_factory=list)
    character_arc: CharacterArc
    dialogue_style: DialogueStyle = Field(default_factory=DialogueStyle)
    narrative_function: NarrativeFunction
    metadata: Optional[CharacterMetadata] = None


# ----------------------------------------------------------------------
# Reviews and story parameters

ReviewStatus = Literal["pending", "approved", "approved_with_changes", "needs_revision", "rejected"]


class Reviewer(CamelModel):
    name: str
    role: Literal[
        "author", "editor", "story_designer", "character_designer", "producer", "reviewer", "other"
    ] = "author"
    notes: Optional[str] = None


class ReviewFeedback(CamelModel):
    summary: str
    strengths: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)


class CharacterReview(CamelModel):
    """Resume payload for the character approval gate."""

    review_id: Optional[str] = None
    reviewer: Optional[Reviewer] = None
    review_status: ReviewStatus
    feedback: Optional[ReviewFeedback] = None


Genre = Literal[
    "fantasy",
    "science_fiction",
    "mystery",
    "thriller",
    "romance",
    "horror",
    "historical_fiction",
    "adventure",
    "literary_fiction",
    "other",
]

Tone = Literal["dark", "lighthearted", "dramatic", "humorous", "suspenseful", "romantic", "neutral"]


class StoryParameters(CamelModel):
    genre: Genre
    setting: str = Field(min_length=1)
    plot_premise: str = Field(min_length=1)
    tone: Optional[Tone] = None
    target_audience: Optional[
        Literal["children", "middle_grade", "young_adult", "adult", "general"]
    ] = None
    chapter_count: Optional[int] = Field(default=None, ge=1, le=10)
    additional_notes: Optional[str] = None


class StoryParametersReview(CamelModel):
    """Resume payload for the story parameters gate."""

    review_status: ReviewStatus
    story_parameters: Optional[StoryParameters] = None


class ReviewSuspend(SuspendEnvelope):
    """Envelope emitted at both gates; always names the entity under review."""

    context: SuspendContext


# ----------------------------------------------------------------------
# Step outputs


class CharacterProfile(CamelModel):
    character_profile: str
    character_name: str


class StoryRequest(CamelModel):
    character_profile: str
    character_name: str
    story_parameters: StoryParameters


class ChapterSummary(CamelModel):
    chapter_number: int
    chapter_title: str
    summary: str


class FictionStory(CamelModel):
    title: str
    story: str
    chapter_breakdown: Optional[List[ChapterSummary]] = None


# ----------------------------------------------------------------------
# Response parsing

_TITLE_RE = re.compile(r"^TITLE:\s*(.+)", re.MULTILINE)
_CHAPTER_RE = re.compile(r"Chapter\s+(\d+):\s*([^\n]+)", re.IGNORECASE)


def parse_story(raw_text: str, character_name: str) -> FictionStory:
    """Pull the title and chapter headings out of the agent's response."""
    title_match = _TITLE_RE.search(raw_text)
    title = title_match.group(1).strip() if title_match else f"{character_name}'s Story"

    chapters = [
        ChapterSummary(
            chapter_number=int(number),
            chapter_title=heading.strip(),
            summary=f"Chapter {number} of the story.",
        )
        for number, heading in _CHAPTER_RE.findall(raw_text)
    ]
    return FictionStory(title=title, story=raw_text, chapter_breakdown=chapters or None)


# ----------------------------------------------------------------------
# Steps


@step(
    STEP_IDS[0],
    input_shape=CharacterDevelopment,
    output_shape=CharacterDevelopment,
    resume_shape=CharacterReview,
    suspend_shape=ReviewSuspend,
)
def collect_character_data(ctx: StepContext):
    """Hold the run until someone approves the character data."""
    character: CharacterDevelopment = ctx.input
    review: Optional[CharacterReview] = ctx.resume
    if review is not None and review.review_status == "approved":
        return Continue(character)

    description = "Please review the character data and approve to proceed with character development."
    if review is not None:
        description = f"Review status is {review.review_status!r}. {description}"
    return ctx.suspend(
        ReviewSuspend(
            reason="awaiting_approval",
            description=description,
            required_action=RequiredAction(
                action_type="approve",
                instructions="Review the character information and resume with reviewStatus: 'approved' to continue.",
                required_fields=["reviewStatus"],
            ),
            state_snapshot=StateSnapshot(
                last_completed_step="",
                pending_steps=list(STEP_IDS[1:]),
                partial_output=ctx.input_data,
            ),
            resume_conditions=ResumeConditions(required_inputs=["reviewStatus"]),
            context=SuspendContext(
                entity_type="character",
                entity_id=character.basic_info.name or "unknown",
                workflow_stage=ctx.step_id,
            ),
        )
    )


@step(STEP_IDS[1], input_shape=CharacterDevelopment, output_shape=CharacterProfile)
async def build_character_profile(ctx: StepContext):
    character: CharacterDevelopment = ctx.input
    profile = await ctx.generate(character_profile_prompt(character))
    return CharacterProfile(character_profile=profile, character_name=character.basic_info.name)


@step(
    STEP_IDS[2],
    input_shape=CharacterProfile,
    output_shape=StoryRequest,
    resume_shape=StoryParametersReview,
    suspend_shape=ReviewSuspend,
)
def collect_story_parameters(ctx: StepContext):
    """Hold the run until story parameters are supplied and approved."""
    profile: CharacterProfile = ctx.input
    review: Optional[StoryParametersReview] = ctx.resume
    if review is not None and review.review_status == "approved" and review.story_parameters:
        return Continue(
            StoryRequest(
                character_profile=profile.character_profile,
                character_name=profile.character_name,
                story_parameters=review.story_parameters,
            )
        )

    return ctx.suspend(
        ReviewSuspend(
            reason="awaiting_human_input",
            description="Character profile has been built. Please provide story parameters to generate the fiction story.",
            required_action=RequiredAction(
                action_type="supply_data",
                instructions=(
                    "Resume with reviewStatus: 'approved' and storyParameters containing: genre, "
                    "setting, plotPremise, tone (optional), targetAudience (optional), "
                    "chapterCount (optional), additionalNotes (optional)."
                ),
                required_fields=["reviewStatus", "storyParameters"],
            ),
            state_snapshot=StateSnapshot(
                last_completed_step=STEP_IDS[1],
                pending_steps=[STEP_IDS[3]],
                partial_output={"characterProfile": profile.character_profile},
            ),
            resume_conditions=ResumeConditions(required_inputs=["reviewStatus", "storyParameters"]),
            context=SuspendContext(
                entity_type="character",
                entity_id=profile.character_name,
                workflow_stage=ctx.step_id,
            ),
        )
    )


@step(STEP_IDS[3], input_shape=StoryRequest, output_shape=FictionStory)
async def generate_fiction_story(ctx: StepContext):
    request: StoryRequest = ctx.input
    raw_text = await ctx.generate(story_prompt(request))
    story = parse_story(raw_text, request.character_name)
    logger.debug(f"Parsed story {story.title!r} with {len(story.chapter_breakdown or [])} chapters")
    return story


fiction_workflow = WorkflowDefinition(
    id=WORKFLOW_ID,
    input_shape=CharacterDevelopment,
    steps=[
        collect_character_data,
        build_character_profile,
        collect_story_parameters,
        generate_fiction_story,
    ],
    description="Approve a character, develop it, collect story parameters and write the story.",
)
