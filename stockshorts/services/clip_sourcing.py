"""Clip Sourcing - finds portrait stock footage on Pexels and downloads it locally."""

import asyncio
import math
from pathlib import Path
from typing import Any, Optional

import requests

from stockshorts.core.config import Settings
from stockshorts.core.errors import DownloadError, InsufficientClipsError, SourcingError
from stockshorts.models.schemas import CandidateClip, Rendition, SourcedClip
from stockshorts.services.progress_broadcaster import ProgressBroadcaster
from stockshorts.utils.io_utils import RunFiles

SOURCING_START_PERCENT = 5
SOURCING_END_PERCENT = 30


def _timeout(seconds: float) -> Optional[float]:
    return seconds if seconds and seconds > 0 else None


def build_queries(topic: str, generic_queries: list[str]) -> list[str]:
    """Generic archival terms first, the topic itself last."""
    return [*generic_queries, topic]


def select_rendition(renditions: list[Rendition]) -> Optional[Rendition]:
    """
    Pick the rendition to download.

    Preference: an ``hd`` rendition at least 720 wide, then the first one at
    least 480 wide, then whatever comes first.
    """
    for rendition in renditions:
        if rendition.quality == "hd" and (rendition.width or 0) >= 720:
            return rendition
    for rendition in renditions:
        if (rendition.width or 0) >= 480:
            return rendition
    return renditions[0] if renditions else None


def accept_candidate(video: dict[str, Any]) -> Optional[CandidateClip]:
    """
    Apply the acceptance filter to one provider search result.

    Args:
        video: A ``videos[]`` entry from the Pexels search response.

    Returns:
        CandidateClip, or None if the video is landscape or has no renditions.
    """
    width = int(video.get("width") or 0)
    height = int(video.get("height") or 0)
    if height < width:
        return None

    renditions = [
        Rendition(
            url=f["link"],
            quality=f.get("quality"),
            width=f.get("width"),
            height=f.get("height"),
        )
        for f in video.get("video_files") or []
        if f.get("link")
    ]
    chosen = select_rendition(renditions)
    if chosen is None:
        return None

    return CandidateClip(
        remote_url=chosen.url,
        reported_duration_seconds=float(video.get("duration") or 0),
        width=width,
        height=height,
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upward (12.5 -> 13)."""
    return math.floor(value + 0.5)


def sourcing_percent(done: int, total: int) -> int:
    """Map download progress onto the 5-30% band."""
    return min(SOURCING_END_PERCENT, SOURCING_START_PERCENT + round_half_up(done / total * 25))


def download_to_file(
    session: requests.Session,
    url: str,
    dest: Path,
    timeout: Optional[float] = None,
    chunk_size: int = 1024 * 1024,
) -> Path:
    """
    Stream a remote file to ``dest``.

    Raises:
        DownloadError: On network errors or non-2xx responses.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        response = session.get(url, stream=True, timeout=timeout)
        try:
            if not response.ok:
                raise DownloadError(url, f"HTTP {response.status_code}")
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if chunk:
                        f.write(chunk)
        finally:
            response.close()
    except requests.Timeout as e:
        raise DownloadError(url, "timeout") from e
    except requests.RequestException as e:
        raise DownloadError(url, str(e)) from e
    return dest


class ClipSourcer:
    """Queries Pexels and materializes the clips a run needs."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        broadcaster: ProgressBroadcaster,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the clip sourcer.

        Args:
            settings: Application settings
            logger: Logger instance
            broadcaster: Progress channel
            session: Optional HTTP session (a fresh one is created otherwise)
        """
        self.settings = settings
        self.logger = logger
        self.broadcaster = broadcaster
        self.session = session or requests.Session()

    def _search(self, query: str) -> list[dict[str, Any]]:
        params = {
            "query": query,
            "orientation": "portrait",
            "size": "medium",
            "per_page": str(self.settings.pexels_per_page),
        }
        headers = {"Authorization": self.settings.pexels_api_key or ""}
        try:
            response = self.session.get(
                self.settings.pexels_search_url,
                params=params,
                headers=headers,
                timeout=_timeout(self.settings.provider_timeout_seconds),
            )
        except requests.RequestException as e:
            raise SourcingError(f"Pexels request failed: {e}") from e

        if not response.ok:
            raise SourcingError(f"Pexels API {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise SourcingError(f"Pexels returned invalid JSON: {e}") from e
        return data.get("videos") or []

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Run one provider query off the event loop."""
        return await asyncio.to_thread(self._search, query)

    async def collect_candidates(self, topic: str) -> list[CandidateClip]:
        """
        Walk the query list until enough candidates are accepted.

        A failing query is logged and skipped.
        """
        cap = self.settings.max_candidates
        chosen: list[CandidateClip] = []
        rejected = 0

        for query in build_queries(topic, self.settings.generic_queries):
            try:
                results = await self.search(query)
            except SourcingError as e:
                self.logger.warning(f"Pexels search error for '{query}': {e}")
                continue

            for video in results:
                candidate = accept_candidate(video)
                if candidate is None:
                    rejected += 1
                    continue
                chosen.append(candidate)
                if len(chosen) >= cap:
                    break

            self.logger.debug(f"Query '{query}': {len(results)} results, {len(chosen)} accepted so far")
            if len(chosen) >= cap:
                break

        self.logger.info(f"Accepted {len(chosen)} candidates ({rejected} rejected)")
        return chosen

    async def fetch_clips(self, topic: str, files: RunFiles) -> list[SourcedClip]:
        """
        Source and download the clips for a run.

        Args:
            topic: Effective topic (queried after the generic terms)
            files: Run file registry; every clip path is registered before download

        Returns:
            Downloaded clips, in acceptance order

        Raises:
            InsufficientClipsError: Fewer than ``min_clips`` candidates accepted
            DownloadError: Any single clip download failed
        """
        self.broadcaster.progress("clips", "Collecting clips", SOURCING_START_PERCENT)

        candidates = await self.collect_candidates(topic)
        if len(candidates) < self.settings.min_clips:
            raise InsufficientClipsError(len(candidates), self.settings.min_clips)

        clips: list[SourcedClip] = []
        timeout = _timeout(self.settings.download_timeout_seconds)
        for candidate in candidates:
            dest = files.new_path("clip")
            self.logger.info(f"Downloading clip {len(clips) + 1}/{len(candidates)} -> {dest.name}")
            await asyncio.to_thread(download_to_file, self.session, candidate.remote_url, dest, timeout)
            clips.append(SourcedClip(local_path=dest, duration_seconds=candidate.reported_duration_seconds))
            self.broadcaster.progress("clips", "Collecting clips", sourcing_percent(len(clips), len(candidates)))

        return clips
