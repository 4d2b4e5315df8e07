"""Utility functions for the Stock Shorts Factory."""

from stockshorts.utils.io_utils import safe_unlink, unique_temp_path
from stockshorts.utils.text_utils import derive_title, generate_caption, pick_random_topic, resolve_topic

__all__ = [
    "safe_unlink",
    "unique_temp_path",
    "derive_title",
    "generate_caption",
    "pick_random_topic",
    "resolve_topic",
]
