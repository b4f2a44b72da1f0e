"""Prompt builders for the fiction workflow."""

from __future__ import annotations

from typing import Iterable, Optional

NOT_SPECIFIED = "Not specified"


def _join(values: Iterable[str]) -> str:
    return ", ".join(values) or "None"


def _or(value: Optional[object], default: str = NOT_SPECIFIED) -> str:
    return default if value is None or value == "" else str(value)


def _humanize(value: Optional[str]) -> Optional[str]:
    return value.replace("_", " ") if value else value


def character_profile_prompt(character) -> str:
    """Prompt asking the agent for a narrative character profile."""
    info = character.basic_info
    personality = character.personality
    motivations = character.motivations
    backstory = character.backstory
    arc = character.character_arc
    dialogue = character.dialogue_style
    narrative = character.narrative_function
    metadata = character.metadata

    relationships = (
        "\n".join(
            f"{r.character_name} ({r.relationship_type}) - {_or(r.emotional_dynamic, 'No details')}"
            for r in character.relationships
        )
        or "None"
    )

    return f"""
You are a fiction character development agent.

Develop a complete fictional character from the structured requirements below.
Return a narrative character profile a fiction writer can use directly.

=== BASIC INFO ===
Name: {info.name}
Role: {info.role}
Age: {_or(info.age)}
Gender: {_or(info.gender)}
Occupation: {_or(info.occupation)}
Background: {_or(info.background)}

=== PERSONALITY ===
Traits: {_join(personality.traits)}
Strengths: {_join(personality.strengths)}
Flaws: {_join(personality.flaws)}
Fears: {_join(personality.fears)}
Desires: {_join(personality.desires)}
Internal Conflicts: {_join(personality.internal_conflicts)}

=== MOTIVATIONS ===
Short Term Goals: {_join(motivations.short_term_goals)}
Long Term Goals: {_join(motivations.long_term_goals)}
Driving Force: {_or(motivations.driving_force)}

=== BACKSTORY ===
Origin: {_or(backstory.origin)}
Key Life Events: {_join(backstory.key_life_events)}
Trauma / Turning Points: {_join(backstory.trauma_or_turning_points)}

=== RELATIONSHIPS ===
{relationships}

=== CHARACTER ARC ===
Starting State: {arc.starting_state}
Challenges: {_join(arc.challenges)}
Transformation: {_or(arc.transformation)}
Ending State: {_or(arc.ending_state)}

=== DIALOGUE STYLE ===
Tone: {_or(dialogue.tone)}
Speech Patterns: {_join(dialogue.speech_patterns)}
Vocabulary Level: {_or(dialogue.vocabulary_level)}

=== NARRATIVE FUNCTION ===
Purpose: {narrative.story_purpose}
Themes: {_join(narrative.themes_represented)}
Conflicts: {_join(narrative.key_conflicts_involved)}

=== METADATA ===
Genre: {_or(metadata.genre if metadata else None)}
World Setting: {_or(metadata.world_setting if metadata else None)}
Notes: {_or(metadata.notes if metadata else None, "None")}
"""


def story_prompt(request, default_chapters: int = 3) -> str:
    """Prompt asking the agent for the full story."""
    params = request.story_parameters
    chapters = params.chapter_count or default_chapters
    genre = _humanize(params.genre)

    return f"""
You are a professional fiction writer. Write a complete, engaging story based on
the character profile and story parameters below.

=== MAIN CHARACTER PROFILE ===
{request.character_profile}

=== STORY PARAMETERS ===
Genre: {genre}
Setting: {params.setting}
Plot Premise: {params.plot_premise}
Tone: {_or(params.tone)}
Target Audience: {_or(_humanize(params.target_audience), "General")}
Number of Chapters: {chapters}
Additional Notes: {_or(params.additional_notes, "None")}

=== INSTRUCTIONS ===
1. Write a complete story with {chapters} chapters.
2. The main character is "{request.character_name}"; keep them consistent with the profile.
3. Open by establishing the setting and introducing the character.
4. Build rising tension through the middle chapters.
5. Deliver a satisfying climax and resolution in the final chapter.
6. Use vivid language suited to the {genre} genre.
7. Show emotion and growth through action and dialogue rather than exposition.

Format your response as:
TITLE: [Story Title]

[Full story text with chapters labeled "Chapter 1: [Title]", "Chapter 2: [Title]", etc.]
"""
