"""YouTube Uploader - publishes the composed short via Data API v3."""

import asyncio
from pathlib import Path
from typing import Any, Optional

from googleapiclient.discovery import build
from googleapiclient.http import MediaFileUpload

from stockshorts.core.config import Settings
from stockshorts.core.errors import PublishError
from stockshorts.models.schemas import Privacy, PublishResult
from stockshorts.services.progress_broadcaster import ProgressBroadcaster
from stockshorts.utils.text_utils import truncate_title

UPLOAD_TAGS = ["shorts", "history", "USA", "vintage", "story"]
UPLOAD_START_PERCENT = 85
UPLOAD_END_PERCENT = 98


class YouTubeUploader:
    """Uploads videos to YouTube using Data API v3."""

    def __init__(self, settings: Settings, logger: Any, broadcaster: Optional[ProgressBroadcaster] = None):
        """
        Initialize YouTube uploader.

        Args:
            settings: Application settings
            logger: Logger instance
            broadcaster: Optional progress channel
        """
        self.settings = settings
        self.logger = logger
        self.broadcaster = broadcaster

    def share_url(self, video_id: str) -> str:
        return f"{self.settings.share_url_base.rstrip('/')}/{video_id}"

    def upload(
        self,
        video_path: Path,
        title: str,
        description: str,
        credentials: Any,
        tags: Optional[list[str]] = None,
        privacy_status: str = "public",
    ) -> str:
        """
        Upload video to YouTube (blocking).

        Args:
            video_path: Path to video file
            title: Video title (truncated to 60 characters)
            description: Video description
            credentials: Authorized Google credentials
            tags: Optional list of tags
            privacy_status: Privacy status (public, unlisted, private)

        Returns:
            YouTube video ID

        Raises:
            FileNotFoundError: If the video file does not exist
            PublishError: If the API rejects the upload
        """
        if not video_path.exists():
            raise FileNotFoundError(f"Video file not found: {video_path}")

        self.logger.info(f"Uploading {video_path.name} to YouTube ({privacy_status})")

        body = {
            "snippet": {
                "title": truncate_title(title),
                "description": description,
                "tags": tags or [],
                "categoryId": self.settings.youtube_category_id,
            },
            "status": {"privacyStatus": privacy_status},
        }

        youtube = build("youtube", "v3", credentials=credentials, cache_discovery=False)
        insert_request = youtube.videos().insert(
            part=",".join(body.keys()),
            body=body,
            media_body=MediaFileUpload(str(video_path), chunksize=-1, resumable=True),
        )
        response = self._resumable_upload(insert_request)

        video_id = response["id"]
        self.logger.info(f"YouTube upload complete! Video ID: {video_id}")
        return video_id

    def _resumable_upload(self, insert_request: Any) -> dict:
        """
        Drive a resumable upload to completion with progress logging.

        Args:
            insert_request: YouTube API insert request

        Returns:
            API response
        """
        response = None
        while response is None:
            status, response = insert_request.next_chunk()
            if response is not None:
                if "id" not in response:
                    raise PublishError(f"Upload failed: {response}")
            elif status:
                self.logger.info(f"Upload progress: {int(status.progress() * 100)}%")
        return response

    async def publish(
        self,
        video_path: Path,
        title: str,
        caption: str,
        credentials: Any,
        privacy_status: Optional[str] = None,
    ) -> PublishResult:
        """
        Publish a composed short and return its share URL.

        Args:
            video_path: Composed video
            title: Video title
            caption: Caption used as the description's first line
            credentials: Authorized Google credentials
            privacy_status: Visibility, defaults to the configured privacy

        Returns:
            PublishResult with the remote id and share URL

        Raises:
            PublishError: On any API or network failure
        """
        if self.broadcaster:
            self.broadcaster.progress("upload", "Uploading video", UPLOAD_START_PERCENT)

        description = f"{caption}\nGenerated 9:16 automatically."
        try:
            video_id = await asyncio.to_thread(
                self.upload,
                video_path,
                title,
                description,
                credentials,
                UPLOAD_TAGS,
                privacy_status or Privacy(self.settings.default_privacy).value,
            )
        except PublishError:
            raise
        except Exception as e:
            raise PublishError(f"YouTube upload failed: {e}") from e

        if self.broadcaster:
            self.broadcaster.progress("upload", "Uploading video", UPLOAD_END_PERCENT)
        return PublishResult(video_id=video_id, url=self.share_url(video_id))
