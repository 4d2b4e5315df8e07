"""Pipeline orchestrator - topic → clips → composed video → YouTube."""

import asyncio
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from stockshorts.core.errors import RunInProgressError
from stockshorts.core.logging_config import get_logger
from stockshorts.models.schemas import Privacy, RunRecord, RunState, RunTrigger
from stockshorts.pipelines.context import PipelineContext
from stockshorts.services.clip_sourcing import ClipSourcer
from stockshorts.services.composition_engine import CompositionEngine
from stockshorts.services.youtube_uploader import YouTubeUploader
from stockshorts.utils.error_handler import format_error_message, format_status_line, get_fallback_suggestion
from stockshorts.utils.io_utils import RunFiles
from stockshorts.utils.text_utils import derive_title, generate_caption, resolve_topic

CAPTION_PERCENT = 32
COMPLETE_PERCENT = 100

_TRANSITIONS = {
    RunState.IDLE: {RunState.SOURCING, RunState.FAILED},
    RunState.SOURCING: {RunState.COMPOSING, RunState.FAILED},
    RunState.COMPOSING: {RunState.PUBLISHING, RunState.FAILED},
    RunState.PUBLISHING: {RunState.COMPLETED, RunState.FAILED},
    RunState.COMPLETED: set(),
    RunState.FAILED: set(),
}


def advance(record: RunRecord, state: RunState) -> None:
    """Move a run to ``state``, rejecting transitions the state machine does not allow."""
    if state not in _TRANSITIONS[record.state]:
        raise RuntimeError(f"Invalid run transition {record.state.value} -> {state.value}")
    record.state = state
    if state.is_terminal:
        record.finished_at = datetime.now()


@dataclass
class RunHandle:
    """What ``start`` hands back: the run's record and its background task."""

    record: RunRecord
    task: asyncio.Task


class PipelineOrchestrator:
    """
    Sequences sourcing, composition and publishing for one run at a time.

    Progress and the terminal done/error event go through the context's
    broadcaster; ``run`` itself never raises.
    """

    def __init__(
        self,
        context: PipelineContext,
        sourcer: Optional[ClipSourcer] = None,
        engine: Optional[CompositionEngine] = None,
        uploader: Optional[YouTubeUploader] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            context: Shared pipeline state
            sourcer: Clip sourcing stage
            engine: Composition stage
            uploader: Publish stage
            rng: Random source for topic selection
        """
        self.context = context
        settings, logger, broadcaster = context.settings, context.logger, context.broadcaster
        self.sourcer = sourcer or ClipSourcer(settings, logger, broadcaster)
        self.engine = engine or CompositionEngine(settings, logger, broadcaster, context.audio_cache)
        self.uploader = uploader or YouTubeUploader(settings, logger, broadcaster)
        self.rng = rng

    @property
    def broadcaster(self):
        return self.context.broadcaster

    def new_record(self, topic: str = "", privacy: Optional[str] = None, trigger: RunTrigger = RunTrigger.MANUAL) -> RunRecord:
        effective = resolve_topic(topic, self.rng)
        return RunRecord(
            run_id=f"run_{uuid.uuid4().hex[:12]}",
            topic=effective,
            title=derive_title(effective),
            privacy=Privacy((privacy or self.context.settings.default_privacy).strip()).value,
            trigger=trigger,
        )

    async def start(self, topic: str = "", privacy: Optional[str] = None, trigger: RunTrigger = RunTrigger.MANUAL) -> RunHandle:
        """
        Start a run in the background and return once it is registered.

        The credential check may refresh the token over the network, so it
        runs in a worker thread.

        Raises:
            NoCredentialError: No valid YouTube credential; nothing was started
            RunInProgressError: Another run is active and the overlap policy is 'reject'
        """
        credentials = await asyncio.to_thread(self.context.credential_store.get_valid_credentials)

        # no await between the overlap check and registration
        if self.context.settings.run_overlap_policy == "reject" and self.context.active_runs:
            raise RunInProgressError(next(iter(self.context.active_runs)))

        record = self.new_record(topic, privacy, trigger)
        self.context.active_runs[record.run_id] = record
        task = asyncio.create_task(self.run(record, credentials), name=record.run_id)
        return RunHandle(record=record, task=task)

    async def run(self, record: RunRecord, credentials: Any) -> RunRecord:
        """
        Execute a run to a terminal state.

        Intermediate files are removed before the terminal event is emitted,
        whatever the outcome.

        Args:
            record: Run record (mutated in place)
            credentials: Valid YouTube credentials

        Returns:
            The finished record
        """
        logger = get_logger(__name__, run_id=record.run_id, topic=record.topic)
        logger.info(f"Run {record.run_id} started ({record.trigger.value}): {record.topic}")

        self.context.active_runs[record.run_id] = record
        files = RunFiles(self.context.settings.tmp_dir)
        failure: Optional[Exception] = None
        stage = "Run"

        try:
            stage = "Collecting clips"
            advance(record, RunState.SOURCING)
            clips = await self.sourcer.fetch_clips(record.topic, files)

            self.broadcaster.progress("caption", "Writing caption", CAPTION_PERCENT)
            caption = generate_caption(record.topic)

            stage = "Composing video"
            advance(record, RunState.COMPOSING)
            video_path: Path = await self.engine.compose(clips, record.topic, files)

            stage = "Uploading video"
            advance(record, RunState.PUBLISHING)
            result = await self.uploader.publish(video_path, record.title, caption, credentials, record.privacy)
            record.url = result.url
        except Exception as e:
            failure = e
        finally:
            removed = files.cleanup()
            logger.debug(f"Removed {removed} temporary files")
            self.context.active_runs.pop(record.run_id, None)

        if failure is None:
            advance(record, RunState.COMPLETED)
            self.broadcaster.progress("upload", "Uploading video", COMPLETE_PERCENT)
            self.context.status_line = format_status_line(f"Uploaded successfully - {record.url}")
            self.broadcaster.done(record.url)
            logger.info(f"Run {record.run_id} published: {record.url}")
        else:
            advance(record, RunState.FAILED)
            record.error = str(failure)
            self.context.status_line = format_status_line(f"Run failed: {record.error}")
            logger.error(
                format_error_message(
                    stage,
                    failure,
                    context={"run_id": record.run_id, "topic": record.topic},
                    suggestion=get_fallback_suggestion(failure),
                )
            )
            self.broadcaster.error(record.error)

        self.context.last_run = record
        return record

    def report_precondition_failure(self, message: str) -> None:
        """Surface a run that could not start through the status line and progress channel."""
        self.context.status_line = format_status_line(message)
        self.broadcaster.error(message)
