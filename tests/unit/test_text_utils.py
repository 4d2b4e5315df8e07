"""Tests for topic, title and caption helpers."""

import random

from stockshorts.utils.text_utils import (
    CAPTION_MAX_CHARS,
    RANDOM_TOPICS,
    derive_title,
    generate_caption,
    pick_random_topic,
    resolve_topic,
    truncate_title,
)


def test_caption_includes_all_tags_when_they_fit():
    caption = generate_caption("gold rush tale")

    assert caption == "Echoes from gold rush tale. #history #USA #vintage #shorts"


def test_caption_stops_at_first_overflowing_tag():
    """A shorter later tag is not squeezed in after an overflow."""
    topic = "x" * 69  # "Echoes from <topic>." is 82 characters
    caption = generate_caption(topic)

    assert caption == f"Echoes from {topic}."
    assert len(caption) <= CAPTION_MAX_CHARS


def test_caption_never_exceeds_budget():
    for topic in RANDOM_TOPICS + ["a much longer topic about the transcontinental railroad and its builders"]:
        assert len(generate_caption(topic)) <= CAPTION_MAX_CHARS


def test_caption_for_overlong_topic_is_base_sentence():
    topic = "the long and winding story of the transcontinental railroad, its builders and its towns"

    caption = generate_caption(topic)

    assert caption == f"Echoes from {topic}."
    assert len(caption) > CAPTION_MAX_CHARS


def test_caption_custom_tags():
    assert generate_caption("dust bowl memories", tags=["#farm"]) == "Echoes from dust bowl memories. #farm"


def test_resolve_topic_strips_given_topic():
    assert resolve_topic("  brooklyn 1920s  ") == "brooklyn 1920s"


def test_resolve_topic_picks_random_when_blank():
    rng = random.Random(7)

    assert resolve_topic("   ", rng) in RANDOM_TOPICS
    assert resolve_topic("", rng) in RANDOM_TOPICS
    assert resolve_topic(None, rng) in RANDOM_TOPICS


def test_pick_random_topic_is_reproducible_with_seed():
    assert pick_random_topic(random.Random(42)) == pick_random_topic(random.Random(42))


def test_derive_title():
    assert derive_title("gold rush tale") == "Short American Story — gold rush tale"


def test_truncate_title():
    long_title = derive_title("the long and winding story of the first transcontinental railroad")

    assert len(truncate_title(long_title)) == 60
    assert truncate_title("short") == "short"
