"""Pydantic models and schemas for the composition pipeline."""

import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ============================================================================
# Enums
# ============================================================================


class RunState(str, Enum):
    """Lifecycle of a single pipeline run."""

    IDLE = "idle"
    SOURCING = "sourcing"
    COMPOSING = "composing"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED)


class RunTrigger(str, Enum):
    """What started a run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    CLI = "cli"


class Privacy(str, Enum):
    """YouTube visibility flag."""

    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


# ============================================================================
# Clip Sourcing Models
# ============================================================================


class Rendition(BaseModel):
    """One downloadable file of a provider video."""

    url: str = Field(..., description="Direct download link")
    quality: Optional[str] = Field(default=None, description="Quality tier reported by the provider (hd, sd, uhd)")
    width: Optional[int] = Field(default=None, description="Rendition width in pixels")
    height: Optional[int] = Field(default=None, description="Rendition height in pixels")


class CandidateClip(BaseModel):
    """A provider search result that passed the acceptance filter."""

    remote_url: str = Field(..., description="URL of the chosen rendition")
    reported_duration_seconds: float = Field(default=0.0, description="Duration estimate reported by the provider")
    width: int = Field(..., description="Source video width")
    height: int = Field(..., description="Source video height")


class SourcedClip(BaseModel):
    """A clip downloaded to local temporary storage for one run."""

    local_path: Path = Field(..., description="Temporary file holding the clip")
    duration_seconds: float = Field(default=0.0, description="Duration estimate carried over from the provider")


# ============================================================================
# Filter Graph Models
# ============================================================================


class SegmentTiming(BaseModel):
    """Where one clip sits on the output timeline."""

    start_offset_seconds: float = Field(..., description="Start of the segment on the output timeline")
    duration_seconds: float = Field(..., description="Length of the trimmed segment")


class SegmentPlan(BaseModel):
    """Timing for every segment of the cross-fade chain."""

    segments: list[SegmentTiming] = Field(..., description="Per-clip timing, in chain order")
    segment_duration: float = Field(..., description="Common trimmed duration of every segment")
    crossfade_duration: float = Field(..., description="Overlap between consecutive segments")
    total_duration: float = Field(..., description="Target output duration")

    @property
    def offsets(self) -> list[float]:
        return [s.start_offset_seconds for s in self.segments]


class NodeKind(str, Enum):
    """Role of a node in the filter graph."""

    PREPROCESS = "preprocess"
    CROSSFADE = "crossfade"
    TEXT_OVERLAY = "text_overlay"


class Filter(BaseModel):
    """A single ffmpeg filter with ordered options."""

    name: str = Field(..., description="ffmpeg filter name, e.g. 'scale'")
    args: list[str] = Field(default_factory=list, description="Positional options, joined with ':'")
    options: list[tuple[str, str]] = Field(default_factory=list, description="Keyword options, in order")


class FilterNode(BaseModel):
    """A filter chain with named input and output pads."""

    kind: NodeKind = Field(..., description="Node role")
    inputs: list[str] = Field(..., description="Input pad labels, without brackets")
    filters: list[Filter] = Field(..., description="Filters applied in sequence")
    output: str = Field(..., description="Output pad label, without brackets")


class FilterGraphSpec(BaseModel):
    """Ordered filter graph plus the label of its terminal node."""

    nodes: list[FilterNode] = Field(..., description="Graph nodes in evaluation order")
    output: str = Field(..., description="Label of the final video pad")
    plan: SegmentPlan = Field(..., description="Timing the graph was built from")

    def nodes_of(self, kind: NodeKind) -> list[FilterNode]:
        return [n for n in self.nodes if n.kind == kind]


# ============================================================================
# Progress Events
# ============================================================================


class ProgressUpdate(BaseModel):
    """Stage progress on the 0-100 scale."""

    type: Literal["progress"] = "progress"
    step_id: str = Field(..., description="Stage identifier (clips, caption, compose, prepare, upload)")
    label: str = Field(..., description="Human readable stage label")
    percent: int = Field(..., ge=0, le=100, description="Overall pipeline progress")
    ts: int = Field(default_factory=now_ms, description="Epoch milliseconds")


class RunDone(BaseModel):
    """Terminal success event."""

    type: Literal["done"] = "done"
    url: str = Field(..., description="Share URL of the published video")
    ts: int = Field(default_factory=now_ms, description="Epoch milliseconds")


class RunFailed(BaseModel):
    """Terminal failure event."""

    type: Literal["error"] = "error"
    message: str = Field(..., description="Failure message")
    ts: int = Field(default_factory=now_ms, description="Epoch milliseconds")


ProgressEvent = Union[ProgressUpdate, RunDone, RunFailed]


# ============================================================================
# Run Models
# ============================================================================


class RunSettings(BaseModel):
    """Persisted scheduling settings."""

    auto_enabled: bool = Field(default=False, description="Whether scheduled runs fire")
    auto_schedule_cron: str = Field(default="0 14 * * *", description="Cron expression for scheduled runs")


class PublishResult(BaseModel):
    """What the hosting service returned for an upload."""

    video_id: str = Field(..., description="Remote video identifier")
    url: str = Field(..., description="Canonical share URL")


class RunRecord(BaseModel):
    """In-memory record of a pipeline run."""

    run_id: str = Field(..., description="Unique run identifier")
    topic: str = Field(..., description="Effective topic")
    title: str = Field(..., description="Video title derived from the topic")
    privacy: str = Field(default="public", description="Requested visibility")
    trigger: RunTrigger = Field(default=RunTrigger.MANUAL, description="What started the run")
    state: RunState = Field(default=RunState.IDLE, description="Current state")
    url: Optional[str] = Field(default=None, description="Share URL once published")
    error: Optional[str] = Field(default=None, description="Failure message if the run failed")
    started_at: datetime = Field(default_factory=datetime.now, description="Start timestamp")
    finished_at: Optional[datetime] = Field(default=None, description="Terminal timestamp")


# ============================================================================
# API Request/Response Models
# ============================================================================


class GenerateRequest(BaseModel):
    """Request to start a run."""

    topic: str = Field(default="", description="Topic; empty picks a random one")
    privacy: Optional[Privacy] = Field(default=None, description="Visibility; defaults to the configured privacy")


class GenerateResponse(BaseModel):
    """Immediate acknowledgement of a started run."""

    run_id: str = Field(..., description="Run identifier")
    topic: str = Field(..., description="Effective topic")
    message: str = Field(default="Run started. Follow progress on /events.", description="Acknowledgement")


class SettingsUpdate(BaseModel):
    """Partial update of the persisted run settings."""

    auto_enabled: Optional[bool] = Field(default=None, description="Enable or disable scheduled runs")
    auto_schedule_cron: Optional[str] = Field(default=None, description="New cron expression")
