"""Application configuration using pydantic-settings."""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stockshorts.models.schemas import Privacy


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via environment variables or a .env file.
    See .env.example for a template.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # Application Settings
    # ========================================================================
    app_name: str = Field(default="Stock Shorts Factory", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Optional rotating log file path")

    # ========================================================================
    # Server Settings
    # ========================================================================
    host: str = Field(default="0.0.0.0", description="Bind address for the HTTP server")
    port: int = Field(default=3000, description="HTTP port (default: 3000)")
    app_base_url: str = Field(default="http://localhost:3000", description="Public base URL of this service")

    # ========================================================================
    # Stock Footage Provider (Pexels)
    # ========================================================================
    pexels_api_key: Optional[str] = Field(default=None, description="Pexels API key")
    pexels_search_url: str = Field(
        default="https://api.pexels.com/videos/search", description="Pexels video search endpoint"
    )
    pexels_per_page: int = Field(default=40, description="Candidates requested per search query (default: 40)")
    generic_queries: list[str] = Field(
        default=[
            "historic reenactment",
            "american history",
            "vintage archive",
            "classic city street",
            "civil rights march",
            "retro footage",
            "old film",
        ],
        description="Generic high-yield search terms tried before the topic itself",
    )
    min_clips: int = Field(default=6, description="Minimum accepted clips required for a run (default: 6)")
    max_candidates: int = Field(default=8, description="Accepted candidate cap across all queries (default: 8)")

    # ========================================================================
    # Composition Settings
    # ========================================================================
    ffmpeg_binary: Optional[str] = Field(
        default=None,
        description="Path to ffmpeg. Defaults to the binary bundled with imageio-ffmpeg.",
    )
    font_file: Optional[str] = Field(
        default="public/fonts/DejaVuSans-Bold.ttf",
        description="Font file used by drawtext overlays (None to use the fontconfig default)",
    )
    tmp_dir: str = Field(default="tmp", description="Directory for clips, outputs and cached assets")
    bg_music_url: Optional[str] = Field(default=None, description="Optional background music URL")
    bg_music_volume: float = Field(default=0.15, description="Background music volume multiplier")
    max_clips: int = Field(default=6, description="Maximum clips in the cross-fade chain (default: 6)")
    crossfade_duration: float = Field(default=0.35, description="Cross-fade duration in seconds")
    total_duration: float = Field(default=15.0, description="Output video duration in seconds")
    video_width: int = Field(default=1080, description="Output width in pixels (vertical format)")
    video_height: int = Field(default=1920, description="Output height in pixels (vertical format)")
    brand_caption: str = Field(default="American Short Story", description="Static caption drawn under the title")

    # ========================================================================
    # Timeouts (0 disables)
    # ========================================================================
    provider_timeout_seconds: float = Field(default=30.0, description="Timeout per Pexels search request")
    download_timeout_seconds: float = Field(default=120.0, description="Timeout per clip/audio download")
    encoder_timeout_seconds: float = Field(default=600.0, description="Timeout for one ffmpeg invocation")

    # ========================================================================
    # YouTube Upload Settings
    # ========================================================================
    youtube_client_id: Optional[str] = Field(default=None, description="Google OAuth client ID")
    youtube_client_secret: Optional[str] = Field(default=None, description="Google OAuth client secret")
    youtube_redirect_uri: Optional[str] = Field(
        default=None, description="OAuth redirect URI (defaults to <app_base_url>/oauth2callback)"
    )
    youtube_token_file: str = Field(default="tmp/token.json", description="Path to store YouTube OAuth token")
    youtube_api_scopes: list[str] = Field(
        default=["https://www.googleapis.com/auth/youtube.upload"],
        description="YouTube API scopes",
    )
    youtube_category_id: str = Field(default="22", description="YouTube category ID (default: 22 People & Blogs)")
    default_privacy: Privacy = Field(default=Privacy.PUBLIC, description="Default visibility: public, unlisted or private")
    share_url_base: str = Field(default="https://youtu.be", description="Base of the canonical share URL")

    # ========================================================================
    # Scheduling Settings
    # ========================================================================
    auto_enabled: bool = Field(default=False, description="Seed value for scheduled runs (persisted afterwards)")
    auto_schedule_cron: str = Field(default="0 14 * * *", description="Seed cron expression for scheduled runs")
    schedule_timezone: str = Field(default="Asia/Baghdad", description="Timezone the cron expression is evaluated in")
    settings_file: str = Field(default="tmp/settings.json", description="Where run settings are persisted")
    run_overlap_policy: Literal["reject", "allow"] = Field(
        default="reject",
        description="What to do when a run starts while another is active: 'reject' or 'allow'",
    )

    @property
    def oauth_redirect_uri(self) -> str:
        """Redirect URI registered with Google for the OAuth callback."""
        return self.youtube_redirect_uri or f"{self.app_base_url.rstrip('/')}/oauth2callback"


# Global settings instance
settings = Settings()
