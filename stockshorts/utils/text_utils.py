"""Text helpers for topics, titles and captions."""

import random
from typing import Optional

RANDOM_TOPICS = [
    "civil rights moments",
    "jazz age streets",
    "route 66 nights",
    "gold rush tale",
    "brooklyn 1920s",
    "american vintage street",
    "dust bowl memories",
    "harlem renaissance vibes",
    "great depression life",
    "wild west legend",
]

CAPTION_TAGS = ["#history", "#USA", "#vintage", "#shorts"]
CAPTION_MAX_CHARS = 90
TITLE_MAX_CHARS = 60


def pick_random_topic(rng: Optional[random.Random] = None) -> str:
    """Pick a topic uniformly at random from the fixed pool."""
    return (rng or random).choice(RANDOM_TOPICS)


def resolve_topic(topic: Optional[str], rng: Optional[random.Random] = None) -> str:
    """
    Return the effective topic for a run.

    Args:
        topic: Caller-supplied topic, may be empty or whitespace.
        rng: Optional random source (for deterministic tests).

    Returns:
        The stripped topic, or a random pick when none was given.
    """
    if topic and topic.strip():
        return topic.strip()
    return pick_random_topic(rng)


def derive_title(topic: str) -> str:
    return f"Short American Story — {topic}"


def generate_caption(topic: str, tags: Optional[list[str]] = None, max_chars: int = CAPTION_MAX_CHARS) -> str:
    """
    Build the video description line for a topic.

    Tags are appended in order while the text stays within ``max_chars``;
    the first tag that would overflow ends the caption. The ``max_chars``
    budget only limits tags: a topic long enough that the base sentence
    already exceeds it yields that sentence alone, untruncated.

    Args:
        topic: Effective topic.
        tags: Hashtags to append (defaults to CAPTION_TAGS).
        max_chars: Character budget.

    Returns:
        Caption text.
    """
    caption = f"Echoes from {topic}."
    for tag in CAPTION_TAGS if tags is None else tags:
        candidate = f"{caption} {tag}"
        if len(candidate) > max_chars:
            break
        caption = candidate
    return caption


def truncate_title(title: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    return title[:max_chars]
