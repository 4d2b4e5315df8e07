"""Pipeline orchestration for the Stock Shorts Factory."""

from stockshorts.pipelines.context import PipelineContext, build_context
from stockshorts.pipelines.orchestrator import PipelineOrchestrator, RunHandle

__all__ = ["PipelineContext", "PipelineOrchestrator", "RunHandle", "build_context"]
