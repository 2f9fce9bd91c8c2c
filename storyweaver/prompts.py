"""Prompt templates for the story, continuation and word-definition requests.

Each builder returns ``(messages, temperature)`` ready for
``TextProvider.generate(..., json_response=True)``. The JSON shape each
prompt asks for is the one the matching response model in
``storyweaver.gateway`` validates.
"""

from __future__ import annotations

import json
from typing import Optional, Tuple

from .models import reading_level_label

STORY_TEMPERATURE = 0.9
DEFINITION_TEMPERATURE = 0.3

SYSTEM_STORYTELLER = (
    "You are a creative storyteller crafting 'Choose Your Own Adventure' stories for children. "
    "Stories are warm, imaginative and safe for young readers: no violence beyond gentle peril, "
    "nothing scary enough to cause nightmares. Always answer with a single JSON object and nothing else."
)

SYSTEM_DICTIONARY = (
    "You are a helpful assistant for children who explains words simply and kindly. "
    "Always answer with a single JSON object and nothing else."
)


def _audience_guidance(age: Optional[int], reading_level: Optional[int]) -> str:
    parts = []
    if age is not None:
        parts.append(f"The story is for a child of age {age}.")
    if reading_level is not None:
        parts.append(
            f"The child's reading level is {reading_level} of 5 ({reading_level_label(reading_level)}; "
            "1 is easiest, 5 is most advanced). Use vocabulary and sentence structures appropriate for that level."
        )
    return " ".join(parts)


def build_opening_prompt(
    hero: str,
    setting: str,
    age: Optional[int] = None,
    reading_level: Optional[int] = None,
) -> Tuple[list[dict], float]:
    user_parts = []
    guidance = _audience_guidance(age, reading_level)
    if guidance:
        user_parts.append(guidance + "\n\n")

    user_parts.extend(
        [
            "Begin a brand new story.\n\n",
            f"Hero: {hero}\n",
            f"Setting: {setting}\n\n",
            "Write the opening segment of the story. Make sure it includes the hero and the setting. ",
            "End at a moment where the hero must decide what to do next, ",
            "and provide two choices for continuing the story.\n",
            "Choices should be very short, no more than 5 words each.\n\n",
            "Output in JSON format:\n",
            json.dumps({"opening_text": "...", "choice_a": "...", "choice_b": "..."}, indent=2),
        ]
    )

    messages = [
        {"role": "system", "content": SYSTEM_STORYTELLER},
        {"role": "user", "content": "".join(user_parts)},
    ]
    return messages, STORY_TEMPERATURE


def build_next_chapter_prompt(
    hero: str,
    setting: str,
    prior_narrative: str,
    chosen_text: str,
    age: Optional[int] = None,
    reading_level: Optional[int] = None,
) -> Tuple[list[dict], float]:
    user_parts = []
    guidance = _audience_guidance(age, reading_level)
    if guidance:
        user_parts.append(guidance + "\n\n")

    user_parts.extend(
        [
            "Continue the story based on the previous story, the reader's last choice, the hero, and the setting.\n\n",
            f"Previous Story:\n{prior_narrative}\n\n",
            f"Last Choice: {chosen_text}\n",
            f"Hero: {hero}\n",
            f"Setting: {setting}\n\n",
            "Write the next chapter of the story. The last choice MUST drive what happens in this chapter. ",
            "Try to include the hero and the setting.\n",
            "Then give two choices for the reader. Make sure the choices are very different from each other ",
            "and will lead to different story outcomes. Choices should be no more than 5 words each.\n",
            "If the story has reached a natural, happy ending, set is_ending to true and leave both choices empty.\n\n",
            "Output in JSON format:\n",
            json.dumps(
                {"next_text": "...", "choice_a": "...", "choice_b": "...", "is_ending": False},
                indent=2,
            ),
        ]
    )

    messages = [
        {"role": "system", "content": SYSTEM_STORYTELLER},
        {"role": "user", "content": "".join(user_parts)},
    ]
    return messages, STORY_TEMPERATURE


def build_definition_prompt(word: str, context: str, age: Optional[int] = None) -> Tuple[list[dict], float]:
    reader = f"A {age}-year-old child" if age is not None else "A young child"
    simple_for = f"a {age}-year-old child" if age is not None else "a young child"

    user = (
        f'{reader} has asked for the definition of the word "{word}".\n'
        f'The word appeared in the following context: "{context}"\n\n'
        f'Provide a very short and simple definition of the word "{word}" that {simple_for} can easily understand.\n'
        'Also provide a simple, kid-friendly phonetic pronunciation for the word. For example: "dy-no-sore".\n\n'
        f'Do not use the word "{word}" in the definition itself.\n'
        "The definition should be no more than one or two simple sentences.\n\n"
        "Output in JSON format:\n"
        + json.dumps({"definition": "...", "pronunciation": "..."}, indent=2)
    )

    messages = [
        {"role": "system", "content": SYSTEM_DICTIONARY},
        {"role": "user", "content": user},
    ]
    return messages, DEFINITION_TEMPERATURE
