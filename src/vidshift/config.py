"""
vidshift Configuration
======================

This module handles service-level configuration loading.

Service settings (decoder tolerances, encoder preferences, pipeline mode,
server and logging) are distinct from the per-run TransformConfig, which is
always passed explicitly into the pipeline.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    VIDSHIFT_PIPELINE_MODE     -> pipeline.mode
    VIDSHIFT_QUEUE_SIZE        -> pipeline.queue_size
    VIDSHIFT_REALTIME_PACING   -> encoder.realtime_pacing
    VIDSHIFT_CODEC_PREFERENCE  -> encoder.codec_preference (comma separated)
    VIDSHIFT_SETTLE_TIMEOUT_MS -> scheduler.settle_timeout_ms
    VIDSHIFT_PROBE_TIMEOUT     -> probe.timeout_seconds
    VIDSHIFT_SIMILARITY_MODE   -> reporting.similarity_mode
    VIDSHIFT_PORT              -> server.port
    VIDSHIFT_JOB_TTL_SECONDS   -> server.job_ttl_seconds
    VIDSHIFT_LOG_LEVEL         -> logging.level
    PORT                       -> server.port (Cloud Run)

Example:
    from vidshift.config import settings

    print(settings.encoder.codec_preference)
    print(settings.scheduler.settle_timeout_ms)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="vidshift", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ProbeConfig(BaseModel):
    """Metadata probe configuration."""

    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Bounded wait for the decoder to establish metadata",
    )
    default_fps: float = Field(
        default=30.0,
        gt=0,
        description="Native fps assumed when the container does not report one",
    )


class SchedulerConfig(BaseModel):
    """Frame scheduler timing configuration."""

    seek_tolerance_seconds: float = Field(
        default=0.01,
        gt=0,
        description="Decode position must be within this distance of the target",
    )
    settle_timeout_ms: float = Field(
        default=50.0,
        gt=0,
        description="Bounded wait before sampling a possibly stale picture",
    )
    poll_interval_ms: float = Field(
        default=4.0,
        gt=0,
        description="Interval between decode position checks",
    )


class EncoderConfig(BaseModel):
    """Streaming encoder configuration."""

    codec_preference: List[str] = Field(
        default_factory=lambda: ["vp9", "vp8", "default"],
        min_length=1,
        description="Ordered codec options; first supported wins",
    )
    audio_codec_preference: List[str] = Field(
        default_factory=lambda: ["libopus", "libvorbis"],
        description="Ordered audio encoders; empty list disables the audio track",
    )
    realtime_pacing: bool = Field(
        default=True,
        description="Hand frames to the encoder on a 1000/fps millisecond timer",
    )


class AudioConfig(BaseModel):
    """Replacement audio track configuration."""

    sample_rate: int = Field(default=44100, ge=8000, le=192000, description="Hz")
    channels: int = Field(default=2, ge=1, le=2, description="Channel count (mono or stereo)")


class PipelineConfig(BaseModel):
    """Pipeline orchestration configuration."""

    mode: str = Field(
        default="batch",
        pattern="^(batch|pipelined)$",
        description="batch: extract all frames then encode; pipelined: bounded producer/consumer",
    )
    queue_size: int = Field(
        default=32,
        ge=1,
        description="Maximum frames held between scheduler and encoder in pipelined mode",
    )
    progress_steps: int = Field(
        default=10,
        ge=1,
        description="Number of progress events emitted per stage",
    )


class ReportingConfig(BaseModel):
    """Difference/similarity reporting configuration."""

    similarity_mode: str = Field(
        default="estimated",
        pattern="^(estimated|measured)$",
        description="estimated: bounded placeholder; measured: mean absolute difference",
    )
    similarity_samples: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Frame pairs retained for measured similarity",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")
    max_upload_mb: int = Field(default=512, ge=1, description="Maximum upload size")
    job_ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="How long finished jobs and their artifacts stay retrievable",
    )
    max_jobs: int = Field(
        default=100,
        ge=1,
        description="Registry cap; the oldest finished jobs are evicted first",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for vidshift.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Pipeline settings
    if env_mode := os.environ.get("VIDSHIFT_PIPELINE_MODE"):
        config_data.setdefault("pipeline", {})["mode"] = env_mode
    if env_queue := os.environ.get("VIDSHIFT_QUEUE_SIZE"):
        config_data.setdefault("pipeline", {})["queue_size"] = int(env_queue)

    # Encoder settings
    if env_pacing := os.environ.get("VIDSHIFT_REALTIME_PACING"):
        config_data.setdefault("encoder", {})["realtime_pacing"] = _parse_bool(env_pacing)
    if env_codecs := os.environ.get("VIDSHIFT_CODEC_PREFERENCE"):
        config_data.setdefault("encoder", {})["codec_preference"] = [
            name.strip() for name in env_codecs.split(",") if name.strip()
        ]

    # Scheduler settings
    if env_settle := os.environ.get("VIDSHIFT_SETTLE_TIMEOUT_MS"):
        config_data.setdefault("scheduler", {})["settle_timeout_ms"] = float(env_settle)

    # Probe settings
    if env_probe := os.environ.get("VIDSHIFT_PROBE_TIMEOUT"):
        config_data.setdefault("probe", {})["timeout_seconds"] = float(env_probe)

    # Reporting settings
    if env_similarity := os.environ.get("VIDSHIFT_SIMILARITY_MODE"):
        config_data.setdefault("reporting", {})["similarity_mode"] = env_similarity

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("VIDSHIFT_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    if env_ttl := os.environ.get("VIDSHIFT_JOB_TTL_SECONDS"):
        config_data.setdefault("server", {})["job_ttl_seconds"] = float(env_ttl)

    # Logging settings
    if env_log := os.environ.get("VIDSHIFT_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
