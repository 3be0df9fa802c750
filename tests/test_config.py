"""
Configuration Tests
===================

Tests for service settings loading and the per-run TransformConfig.
"""

import pytest


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment overrides that would leak into load_config."""
    for name in (
        "PORT",
        "VIDSHIFT_PORT",
        "VIDSHIFT_PIPELINE_MODE",
        "VIDSHIFT_QUEUE_SIZE",
        "VIDSHIFT_REALTIME_PACING",
        "VIDSHIFT_CODEC_PREFERENCE",
        "VIDSHIFT_SETTLE_TIMEOUT_MS",
        "VIDSHIFT_PROBE_TIMEOUT",
        "VIDSHIFT_SIMILARITY_MODE",
        "VIDSHIFT_JOB_TTL_SECONDS",
        "VIDSHIFT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for load_config."""

    def test_defaults(self):
        from vidshift.config import Settings

        settings = Settings()

        assert settings.pipeline.mode == "batch"
        assert settings.encoder.codec_preference == ["vp9", "vp8", "default"]
        assert settings.encoder.realtime_pacing is True
        assert settings.audio.sample_rate == 44100
        assert settings.audio.channels == 2
        assert settings.reporting.similarity_mode == "estimated"

    def test_yaml_file(self, tmp_path, clean_env):
        from vidshift.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text(
            "pipeline:\n"
            "  mode: pipelined\n"
            "  queue_size: 8\n"
            "encoder:\n"
            "  codec_preference: [vp8]\n"
            "server:\n"
            "  port: 9000\n"
        )

        settings = load_config(str(path))

        assert settings.pipeline.mode == "pipelined"
        assert settings.pipeline.queue_size == 8
        assert settings.encoder.codec_preference == ["vp8"]
        assert settings.server.port == 9000
        # Untouched sections keep defaults
        assert settings.scheduler.settle_timeout_ms == 50.0

    def test_env_overrides_file(self, tmp_path, clean_env):
        from vidshift.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text("pipeline:\n  mode: batch\n")

        clean_env.setenv("VIDSHIFT_PIPELINE_MODE", "pipelined")
        clean_env.setenv("VIDSHIFT_REALTIME_PACING", "false")
        clean_env.setenv("VIDSHIFT_CODEC_PREFERENCE", "vp8, default")
        clean_env.setenv("VIDSHIFT_SIMILARITY_MODE", "measured")
        clean_env.setenv("PORT", "8080")

        settings = load_config(str(path))

        assert settings.pipeline.mode == "pipelined"
        assert settings.encoder.realtime_pacing is False
        assert settings.encoder.codec_preference == ["vp8", "default"]
        assert settings.reporting.similarity_mode == "measured"
        assert settings.server.port == 8080

    def test_missing_file_uses_defaults(self, tmp_path, clean_env):
        from vidshift.config import load_config

        settings = load_config(str(tmp_path / "absent.yaml"))
        assert settings.pipeline.mode == "batch"

    def test_invalid_mode_rejected(self, tmp_path, clean_env):
        from pydantic import ValidationError

        from vidshift.config import load_config

        path = tmp_path / "config.yaml"
        path.write_text("pipeline:\n  mode: parallel\n")

        with pytest.raises(ValidationError):
            load_config(str(path))


class TestTransformConfig:
    """Tests for the per-run parameter set."""

    def test_defaults(self):
        from vidshift.models import OutputFormat, TransformConfig

        config = TransformConfig()

        assert config.fps == 24
        assert config.resolution.label == "1280x720"
        assert config.bitrate == 2000
        assert config.format == OutputFormat.MP4
        assert config.color_shift == 5
        assert config.noise_level == 2
        assert config.frame_offset == 1
        assert config.metadata_scrambling is True
        assert config.timestamp_shift == 33

    @pytest.mark.parametrize(
        "field,value",
        [
            ("fps", 11),
            ("fps", 61),
            ("bitrate", 400),
            ("color_shift", 16),
            ("noise_level", -1),
            ("frame_offset", 11),
            ("timestamp_shift", 9),
        ],
    )
    def test_out_of_range(self, field, value):
        from pydantic import ValidationError

        from vidshift.models import TransformConfig

        with pytest.raises(ValidationError):
            TransformConfig(**{field: value})

    def test_immutable(self):
        from pydantic import ValidationError

        from vidshift.models import TransformConfig

        config = TransformConfig()
        with pytest.raises(ValidationError):
            config.fps = 30

    def test_from_source_clamps(self, sample_asset):
        """Resolution is copied; fps and bitrate are clamped into range."""
        from vidshift.models import TransformConfig

        asset = sample_asset.model_copy(update={"fps": 120.0, "bitrate": 20000})
        config = TransformConfig.from_source(asset)

        assert config.fps == 60
        assert config.bitrate == 5000
        assert config.resolution.as_tuple() == (640, 360)

    def test_from_source_overrides(self, sample_asset):
        from vidshift.models import TransformConfig

        config = TransformConfig.from_source(sample_asset, fps=15, noise_level=0)

        assert config.fps == 15
        assert config.noise_level == 0
        assert config.bitrate == 2000


class TestResolution:
    """Tests for Resolution parsing."""

    def test_parse(self):
        from vidshift.models import Resolution

        resolution = Resolution.parse("854x480")
        assert resolution.as_tuple() == (854, 480)
        assert resolution.label == "854x480"

    @pytest.mark.parametrize("label", ["720p", "x", "axb", "1280"])
    def test_parse_invalid(self, label):
        from vidshift.models import Resolution

        with pytest.raises(ValueError):
            Resolution.parse(label)

    def test_bitrate_estimate(self):
        from vidshift.models.media import estimate_bitrate_kbps

        assert estimate_bitrate_kbps(500_000, 2.0) == 2000
        with pytest.raises(ValueError):
            estimate_bitrate_kbps(1000, 0)
