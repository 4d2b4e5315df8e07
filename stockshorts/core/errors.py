"""Exception hierarchy for the composition pipeline."""

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure a pipeline run can end with."""


class SourcingError(PipelineError):
    """Stock footage could not be sourced."""


class InsufficientClipsError(SourcingError):
    """Fewer usable clips were found than a run needs."""

    def __init__(self, found: int, required: int):
        self.found = found
        self.required = required
        super().__init__(f"Not enough clips from Pexels: found {found}, need {required}")


class DownloadError(PipelineError):
    """A remote file could not be downloaded."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Download failed ({reason}): {url}")


class EncodingError(PipelineError):
    """ffmpeg terminated abnormally."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(message)


class PublishError(PipelineError):
    """Upload to the hosting service failed."""


class NoCredentialError(Exception):
    """
    No valid publishing credential is available.

    Raised before any pipeline work starts; carries the URL the user should
    visit to (re)connect the account.
    """

    def __init__(self, auth_url: Optional[str] = None):
        self.auth_url = auth_url
        super().__init__("Please connect YouTube first.")


class RunInProgressError(Exception):
    """A run was requested while another one is still active."""

    def __init__(self, active_run_id: str):
        self.active_run_id = active_run_id
        super().__init__(f"A run is already in progress ({active_run_id})")
