"""Application configuration using pydantic-settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via environment variables or a .env file.
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
    app_name: str = Field(default="Reel Assembler", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Optional log file path (rotated, zipped)")
    cors_allow_origins: list[str] = Field(default=["*"], description="Origins allowed to call the reel API")

    # ========================================================================
    # Stock Media & Music Provider Keys
    # ========================================================================
    pexels_api_key: Optional[str] = Field(default=None, description="Pexels API key (primary media provider)")
    pixabay_api_key: Optional[str] = Field(default=None, description="Pixabay API key (secondary media provider)")
    jamendo_api_key: Optional[str] = Field(default=None, description="Jamendo client id for background music")

    pexels_base_url: str = Field(default="https://api.pexels.com", description="Pexels API base URL")
    pixabay_base_url: str = Field(default="https://pixabay.com/api", description="Pixabay API base URL")
    jamendo_base_url: str = Field(default="https://api.jamendo.com/v3.0", description="Jamendo API base URL")

    # ========================================================================
    # HTTP, Retry & Rate Limiting Settings
    # ========================================================================
    http_timeout_seconds: float = Field(default=30.0, description="Timeout for provider search requests")
    download_timeout_seconds: float = Field(default=120.0, description="Timeout for media downloads")
    provider_max_attempts: int = Field(
        default=3, description="Attempts per provider per search strategy before moving on (default: 3)"
    )
    provider_backoff_seconds: float = Field(
        default=1.0, description="Base backoff between provider attempts; doubles on every retry"
    )
    enable_rate_limiting: bool = Field(
        default=True,
        description="Enable rate limiting for provider calls to prevent hitting limits (default: true)",
    )
    pexels_rate_limit: int = Field(default=200, description="Pexels API calls per minute")
    pixabay_rate_limit: int = Field(default=100, description="Pixabay API calls per minute")
    jamendo_rate_limit: int = Field(default=60, description="Jamendo API calls per minute")

    # ========================================================================
    # Media Validation Settings
    # ========================================================================
    min_asset_bytes: int = Field(
        default=102400, description="Downloads smaller than this are treated as corrupt placeholders (100KB)"
    )
    duration_match_tolerance: float = Field(
        default=5.0, description="Stock video duration must be within this many seconds of the scene duration"
    )
    recent_media_ttl_seconds: float = Field(
        default=300.0, description="How long a selected stock clip stays blocked for dissimilar scenes (5 min)"
    )
    recent_media_max_entries: int = Field(default=256, description="Upper bound on the recently-used registry")
    query_similarity_threshold: float = Field(
        default=0.3, description="Token overlap above which two search queries count as near-duplicates"
    )
    video_candidate_pool: int = Field(default=4, description="Top candidates kept before random selection")

    # ========================================================================
    # Output Format Settings
    # ========================================================================
    video_width: int = Field(default=1080, description="Output width in pixels (vertical format)")
    video_height: int = Field(default=1920, description="Output height in pixels (vertical format)")
    video_fps: int = Field(default=25, description="Output frame rate")
    pixel_format: str = Field(default="yuv420p", description="Output pixel format")
    video_codec: str = Field(default="libx264", description="Video encoder")
    encoder_preset: str = Field(default="ultrafast", description="x264 preset")
    encoder_crf: int = Field(default=28, description="x264 constant rate factor")
    encoder_maxrate: str = Field(default="2500k", description="Encoder max bitrate")
    encoder_bufsize: str = Field(default="5000k", description="Encoder buffer size")
    video_timescale: int = Field(default=25000, description="Shared track timescale for normalized clips")
    transition_duration: float = Field(default=0.5, description="Cross-transition duration between scenes")
    fade_max_seconds: float = Field(default=0.5, description="Upper bound for per-scene fade in/out")
    fade_ratio: float = Field(default=0.1, description="Per-scene fade as a fraction of scene duration")

    # ========================================================================
    # Audio Mixing Settings
    # ========================================================================
    audio_sample_rate: int = Field(default=48000, description="Common sample rate for voice and music")
    audio_codec: str = Field(default="aac", description="Output audio codec")
    audio_bitrate: str = Field(default="192k", description="Output audio bitrate")
    voice_volume: float = Field(default=1.0, description="Voice gain after compression")
    music_volume: float = Field(default=0.6, description="Relative background music gain before ducking")
    music_lowpass_hz: int = Field(default=6000, description="Low-pass cutoff applied to background music")
    music_fade_out_seconds: float = Field(default=1.0, description="Music fade-out at the end of the reel")
    duck_threshold: float = Field(default=0.12, description="Sidechain compressor threshold")
    duck_ratio: float = Field(default=4.0, description="Sidechain compressor ratio")
    duck_attack_ms: float = Field(default=20.0, description="Sidechain attack in milliseconds")
    duck_release_ms: float = Field(default=300.0, description="Sidechain release in milliseconds")

    # ========================================================================
    # Validation Tolerances
    # ========================================================================
    render_duration_tolerance: float = Field(
        default=0.1, description="Allowed drift between requested and rendered scene duration (logged only)"
    )
    final_duration_tolerance: float = Field(
        default=0.5, description="Allowed drift between final video and voiceover duration (logged only)"
    )

    # ========================================================================
    # Media Toolkit Settings
    # ========================================================================
    ffmpeg_binary: str = Field(default="ffmpeg", description="ffmpeg executable")
    ffprobe_binary: str = Field(default="ffprobe", description="ffprobe executable")
    toolkit_timeout_seconds: float = Field(default=600.0, description="Hard timeout for a single toolkit call")

    # ========================================================================
    # Parallelism Settings
    # ========================================================================
    max_parallel_scene_fetches: int = Field(
        default=3, description="Concurrent per-scene media acquisitions (respects provider limits)"
    )
    max_parallel_scene_renders: int = Field(
        default=2, description="Concurrent per-scene renders (bounded by local CPU)"
    )

    # ========================================================================
    # Background Music & Thumbnail Settings
    # ========================================================================
    music_download_attempts: int = Field(default=3, description="Attempts to find and download background music")
    music_min_track_seconds: float = Field(default=30.0, description="Shortest acceptable music track")
    music_max_track_seconds: float = Field(default=300.0, description="Longest acceptable music track")
    thumbnail_enabled: bool = Field(default=True, description="Extract a thumbnail during finalizing")
    thumbnail_width: int = Field(default=1280, description="Thumbnail width")
    thumbnail_height: int = Field(default=720, description="Thumbnail height")

    # ========================================================================
    # Storage Settings
    # ========================================================================
    temp_dir: Optional[str] = Field(default=None, description="Scratch directory for job files (default: system temp)")
    output_dir: str = Field(default="outputs/reels", description="Where finished reels are written")


# Global settings instance
settings = Settings()
