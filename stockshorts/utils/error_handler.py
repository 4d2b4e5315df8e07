"""Error Handler - user-facing status lines and log suggestions for stage failures."""

from datetime import datetime
from typing import Optional

from stockshorts.core.errors import (
    DownloadError,
    EncodingError,
    InsufficientClipsError,
    NoCredentialError,
    PublishError,
    SourcingError,
)


def format_error_message(
    operation: str,
    error: Exception,
    context: Optional[dict] = None,
    suggestion: Optional[str] = None,
) -> str:
    """
    Format a user-friendly error message for logs.

    Args:
        operation: What operation was being performed (e.g., "Composing video")
        error: The exception that occurred
        context: Additional context (e.g., {"run_id": "run_ab12", "topic": "gold rush tale"})
        suggestion: Optional suggestion for how to fix the issue

    Returns:
        Formatted error message
    """
    context_str = ""
    if context:
        context_parts = [f"{k}={v}" for k, v in context.items()]
        context_str = f" ({', '.join(context_parts)})"

    message = f"{operation} failed{context_str}\n"
    message += f"   Error: {type(error).__name__}: {error}"

    if suggestion:
        message += f"\n   Suggestion: {suggestion}"

    return message


def get_fallback_suggestion(error: Exception) -> Optional[str]:
    """
    Get a suggestion for how to recover from a stage failure.

    Args:
        error: The exception

    Returns:
        Suggestion string or None
    """
    error_msg = str(error).lower()

    if isinstance(error, NoCredentialError):
        return "Open /auth to connect a YouTube account, then start the run again."

    if isinstance(error, InsufficientClipsError):
        return "Pexels returned too few portrait clips. Retry later or pick a broader topic."

    if isinstance(error, SourcingError):
        if "api key" in error_msg or "401" in error_msg:
            return "Check PEXELS_API_KEY in .env."
        return "Stock footage search failed. Retry the run."

    if isinstance(error, DownloadError):
        if "timeout" in error_msg:
            return "Clip download timed out. Raise DOWNLOAD_TIMEOUT_SECONDS or retry."
        return "A clip could not be downloaded. Retry the run."

    if isinstance(error, EncodingError):
        if "no such file" in error_msg or "fontfile" in error_msg:
            return "Check FONT_FILE points at an existing .ttf file."
        if "timeout" in error_msg or "timed out" in error_msg:
            return "ffmpeg exceeded ENCODER_TIMEOUT_SECONDS. Check server load."
        return "ffmpeg failed. Enable LOG_LEVEL=DEBUG to see its output."

    if isinstance(error, PublishError):
        if "oauth" in error_msg or "invalid_grant" in error_msg or "401" in error_msg:
            return "YouTube authentication failed. Reconnect via /auth."
        if "quota" in error_msg or "rate limit" in error_msg or "429" in error_msg:
            return "YouTube API quota exceeded. Wait and try again later."
        return "Upload failed. Check logs for details."

    return None


def format_status_line(message: str, when: Optional[datetime] = None) -> str:
    """Status line shown to users: '<local time> : <message>'."""
    when = when or datetime.now()
    return f"{when.strftime('%Y-%m-%d %H:%M:%S')} : {message}"
