"""Composition Engine - runs ffmpeg over the built filter graph and reports progress."""

import asyncio
import contextlib
from collections import deque
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import requests

from stockshorts.core.config import Settings
from stockshorts.core.errors import DownloadError, EncodingError
from stockshorts.models.schemas import FilterGraphSpec, SourcedClip
from stockshorts.services.clip_sourcing import download_to_file, round_half_up
from stockshorts.services.filter_graph import build_graph, to_filter_complex
from stockshorts.services.progress_broadcaster import ProgressBroadcaster
from stockshorts.utils.io_utils import RunFiles

COMPOSE_START_PERCENT = 35
COMPOSE_END_PERCENT = 75
FINALIZE_PERCENT = 82
STDERR_TAIL_LINES = 20

SpawnFn = Callable[..., Awaitable[Any]]


def map_encoder_percent(native_percent: float) -> int:
    """Map ffmpeg's own 0-100 progress onto the 35-75% band."""
    mapped = COMPOSE_START_PERCENT + round_half_up(native_percent * 0.4)
    return max(COMPOSE_START_PERCENT, min(COMPOSE_END_PERCENT, mapped))


class ProgressMapper:
    """Tracks the last forwarded percent so repeated values are suppressed."""

    def __init__(self, initial: int = COMPOSE_START_PERCENT):
        self.last = initial

    def update(self, native_percent: float) -> Optional[int]:
        """Return the mapped percent if it changed, else None."""
        mapped = map_encoder_percent(native_percent)
        if mapped == self.last:
            return None
        self.last = mapped
        return mapped


def parse_out_time(key: str, value: str) -> Optional[float]:
    """
    Seconds of output written, from one ``-progress`` key/value pair.

    ffmpeg reports ``out_time_us`` and ``out_time_ms`` (both microseconds)
    and ``out_time`` as ``HH:MM:SS.micro``; anything else yields None.
    """
    try:
        if key in ("out_time_us", "out_time_ms"):
            return int(value) / 1_000_000
        if key == "out_time":
            hours, minutes, seconds = value.split(":")
            return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    except ValueError:
        return None
    return None


class BackgroundAudioCache:
    """
    Background music downloaded once per process.

    The cached file is reused while it still exists on disk. A lock keeps
    overlapping runs from downloading into the same file at once.
    """

    def __init__(self, settings: Settings, logger: Any, session: Optional[requests.Session] = None):
        self.settings = settings
        self.logger = logger
        self.session = session or requests.Session()
        self.path = Path(settings.tmp_dir) / "bg_music.mp3"
        self._cached: Optional[Path] = None
        self._lock = asyncio.Lock()

    async def ensure(self) -> Optional[Path]:
        """
        Return the local background track, downloading it if needed.

        Returns:
            Path to the track, or None when unconfigured or the download failed.
        """
        url = self.settings.bg_music_url
        if not url:
            return None

        async with self._lock:
            if self._cached and self._cached.exists():
                return self._cached

            timeout = self.settings.download_timeout_seconds or None
            try:
                await asyncio.to_thread(download_to_file, self.session, url, self.path, timeout)
            except (DownloadError, OSError) as e:
                self.logger.error(f"BG music download failed: {e}")
                self._cached = None
                return None

            self._cached = self.path
            return self._cached


class CompositionEngine:
    """Assembles sourced clips into one vertical video with ffmpeg."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        broadcaster: ProgressBroadcaster,
        audio_cache: Optional[BackgroundAudioCache] = None,
        spawn: Optional[SpawnFn] = None,
    ):
        """
        Initialize the composition engine.

        Args:
            settings: Application settings
            logger: Logger instance
            broadcaster: Progress channel
            audio_cache: Background music cache shared across runs
            spawn: Process factory, defaults to asyncio.create_subprocess_exec
        """
        self.settings = settings
        self.logger = logger
        self.broadcaster = broadcaster
        self.audio_cache = audio_cache or BackgroundAudioCache(settings, logger)
        self._spawn = spawn or asyncio.create_subprocess_exec

    def ffmpeg_path(self) -> str:
        if self.settings.ffmpeg_binary:
            return self.settings.ffmpeg_binary
        import imageio_ffmpeg

        return imageio_ffmpeg.get_ffmpeg_exe()

    def build_graph(self, clip_count: int, title: str) -> FilterGraphSpec:
        return build_graph(
            clip_count,
            title,
            self.settings.crossfade_duration,
            self.settings.total_duration,
            font_file=self.settings.font_file,
            brand_caption=self.settings.brand_caption,
            width=self.settings.video_width,
            height=self.settings.video_height,
            max_clips=self.settings.max_clips,
        )

    def build_command(
        self,
        clips: list[SourcedClip],
        graph: FilterGraphSpec,
        output_path: Path,
        music: Optional[Path] = None,
    ) -> list[str]:
        """
        Build the full ffmpeg argument list.

        Args:
            clips: Clips to use, already capped to the graph's clip count
            graph: Filter graph built for those clips
            output_path: Where ffmpeg writes the result
            music: Optional background track

        Returns:
            argv for ffmpeg, binary first
        """
        cmd = [self.ffmpeg_path(), "-y", "-hide_banner"]
        for clip in clips:
            cmd += ["-an", "-i", str(clip.local_path)]
        if music:
            cmd += ["-i", str(music)]

        cmd += ["-filter_complex", to_filter_complex(graph), "-map", f"[{graph.output}]"]

        if music:
            cmd += [
                "-map", f"{len(clips)}:a",
                "-c:a", "aac",
                "-b:a", "128k",
                "-filter:a", f"volume={self.settings.bg_music_volume}",
                "-shortest",
            ]
        else:
            cmd += ["-an"]

        cmd += [
            "-c:v", "libx264",
            "-profile:v", "main",
            "-crf", "23",
            "-preset", "veryfast",
            "-pix_fmt", "yuv420p",
            "-r", "30",
            "-t", f"{self.settings.total_duration}",
            "-movflags", "+faststart",
            "-progress", "pipe:1",
            "-nostats",
            str(output_path),
        ]
        return cmd

    async def _read_progress(self, stream: asyncio.StreamReader, mapper: ProgressMapper) -> None:
        total = self.settings.total_duration
        while True:
            line = await stream.readline()
            if not line:
                break
            key, _, value = line.decode(errors="replace").strip().partition("=")
            seconds = parse_out_time(key, value)
            if seconds is None or total <= 0:
                continue
            percent = mapper.update(seconds / total * 100)
            if percent is not None:
                self.broadcaster.progress("compose", "Composing video", percent)

    async def _read_stderr(self, stream: asyncio.StreamReader, tail: deque) -> None:
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode(errors="replace").rstrip()
            if text:
                tail.append(text)
                self.logger.debug(f"ffmpeg: {text}")

    async def _supervise(self, process: Any, tail: deque) -> int:
        mapper = ProgressMapper()
        await asyncio.gather(
            self._read_progress(process.stdout, mapper),
            self._read_stderr(process.stderr, tail),
        )
        return await process.wait()

    async def run_encoder(self, cmd: list[str]) -> None:
        """
        Run ffmpeg to completion, forwarding progress.

        Raises:
            EncodingError: Spawn failure, timeout or non-zero exit status
        """
        self.logger.info(f"Running ffmpeg with {cmd.count('-i')} inputs")
        try:
            process = await self._spawn(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodingError(f"Could not start ffmpeg: {e}") from e

        tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        timeout = self.settings.encoder_timeout_seconds or None
        try:
            returncode = await asyncio.wait_for(self._supervise(process, tail), timeout)
        except asyncio.TimeoutError:
            # ffmpeg may exit between the timeout and the kill
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise EncodingError(f"ffmpeg timed out after {timeout}s")

        if returncode != 0:
            detail = tail[-1] if tail else "no diagnostic output"
            raise EncodingError(f"ffmpeg exited with code {returncode}: {detail}", returncode=returncode)

    async def compose(self, clips: list[SourcedClip], title: str, files: RunFiles) -> Path:
        """
        Compose the final video.

        Args:
            clips: Sourced clips; only the first ``max_clips`` are used
            title: Text of the title overlay
            files: Run file registry; the output path is registered in it

        Returns:
            Path to the encoded video

        Raises:
            EncodingError: If ffmpeg fails or produces no output
        """
        if not clips:
            raise EncodingError("No clips to compose")

        graph = self.build_graph(len(clips), title)
        used = clips[: len(graph.plan.segments)]
        music = await self.audio_cache.ensure()
        output_path = files.new_path("out")

        self.logger.info(
            f"Composing {len(used)} clips, segment {graph.plan.segment_duration}s, "
            f"background audio: {'yes' if music else 'no'}"
        )
        await self.run_encoder(self.build_command(used, graph, output_path, music))

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise EncodingError(f"ffmpeg reported success but wrote no output: {output_path}")

        self.broadcaster.progress("prepare", "Preparing video", FINALIZE_PERCENT)
        return output_path
