"""Shared pytest fixtures and configuration."""

import asyncio
from pathlib import Path
from typing import Optional
from unittest.mock import MagicMock

import pytest
import requests

from stockshorts.core.config import Settings
from stockshorts.core.logging_config import get_logger
from stockshorts.services.progress_broadcaster import ProgressBroadcaster


@pytest.fixture
def settings(tmp_path):
    """Create test settings isolated from .env and the working directory."""
    return Settings(
        _env_file=None,
        pexels_api_key="test-key",
        ffmpeg_binary="ffmpeg",
        font_file="fonts/DejaVuSans-Bold.ttf",
        tmp_dir=str(tmp_path / "tmp"),
        settings_file=str(tmp_path / "settings.json"),
        youtube_token_file=str(tmp_path / "token.json"),
    )


@pytest.fixture
def logger():
    """Create test logger instance."""
    return get_logger(__name__)


@pytest.fixture
def broadcaster(logger):
    return ProgressBroadcaster(logger)


def pexels_video(width: int = 1080, height: int = 1920, link: str = "https://cdn.example/clip.mp4", duration: int = 12) -> dict:
    """A ``videos[]`` entry shaped like the Pexels search response."""
    return {
        "width": width,
        "height": height,
        "duration": duration,
        "video_files": [
            {"link": link.replace(".mp4", "_sd.mp4"), "quality": "sd", "width": 540, "height": 960},
            {"link": link, "quality": "hd", "width": 1080, "height": 1920},
        ],
    }


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: Optional[dict] = None, body: bytes = b""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload
        self._body = body
        self.closed = False

    def json(self) -> dict:
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload

    def iter_content(self, chunk_size: int = 1024):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i : i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakePexelsSession:
    """
    Answers Pexels searches from a query → videos mapping and serves
    every other URL as a small binary download.
    """

    def __init__(self, search_results: Optional[dict] = None, failing_queries: Optional[set] = None):
        self.search_results = search_results or {}
        self.failing_queries = failing_queries or set()
        self.searches: list[str] = []
        self.downloads: list[str] = []

    def get(self, url, params=None, headers=None, timeout=None, stream=False):
        if params and "query" in params:
            query = params["query"]
            self.searches.append(query)
            if query in self.failing_queries:
                raise requests.ConnectionError(f"connection reset for {query}")
            return FakeResponse(payload={"videos": self.search_results.get(query, [])})
        self.downloads.append(url)
        return FakeResponse(body=b"\x00\x00\x00\x18ftypmp42")


@pytest.fixture
def portrait_videos():
    return [pexels_video(link=f"https://cdn.example/clip{i}.mp4") for i in range(10)]


class FakeProcess:
    """asyncio subprocess double fed with canned stdout/stderr."""

    def __init__(self, stdout: bytes, stderr: bytes, returncode: int, hang: bool = False, exited: bool = False):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stderr.feed_data(stderr)
        if not hang:
            self.stdout.feed_eof()
            self.stderr.feed_eof()
        self.returncode = returncode
        self.killed = False
        self.exited = exited

    async def wait(self) -> int:
        return -9 if self.killed else self.returncode

    def kill(self) -> None:
        if self.exited:
            raise ProcessLookupError()
        self.killed = True


class FakeEncoder:
    """
    Replacement for asyncio.create_subprocess_exec.

    Records every command and, on success, writes bytes to the output path
    (the last argument) like ffmpeg would.
    """

    def __init__(
        self,
        progress_lines: Optional[list[str]] = None,
        stderr_lines: Optional[list[str]] = None,
        returncode: int = 0,
        write_output: bool = True,
        hang: bool = False,
        exited_before_kill: bool = False,
    ):
        self.progress_lines = progress_lines or []
        self.stderr_lines = stderr_lines or []
        self.returncode = returncode
        self.write_output = write_output
        self.hang = hang
        self.exited_before_kill = exited_before_kill
        self.commands: list[list[str]] = []
        self.process: Optional[FakeProcess] = None

    async def __call__(self, *cmd, stdout=None, stderr=None):
        self.commands.append(list(cmd))
        if self.write_output and self.returncode == 0:
            Path(cmd[-1]).write_bytes(b"encoded video")
        self.process = FakeProcess(
            "".join(f"{line}\n" for line in self.progress_lines).encode(),
            "".join(f"{line}\n" for line in self.stderr_lines).encode(),
            self.returncode,
            hang=self.hang,
            exited=self.exited_before_kill,
        )
        return self.process


@pytest.fixture
def fake_youtube():
    """YouTube API client double whose insert request completes in one chunk."""
    service = MagicMock()
    insert_request = MagicMock()
    insert_request.next_chunk.return_value = (None, {"id": "vid123"})
    service.videos.return_value.insert.return_value = insert_request
    return service


@pytest.fixture
def make_video():
    return pexels_video


@pytest.fixture
def pexels_session():
    return FakePexelsSession


@pytest.fixture
def encoder():
    return FakeEncoder
