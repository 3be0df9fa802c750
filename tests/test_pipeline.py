"""
Pipeline Tests
==============

End-to-end runs of the LangGraph pipeline against in-memory doubles.
"""

import asyncio

import numpy as np
import pytest


def _pipeline(settings, source, backend, **overrides):
    from vidshift.pipeline import create_pipeline

    merged = {key: dict(value) for key, value in settings.items()}
    for section, values in overrides.items():
        merged.setdefault(section, {}).update(values)
    return create_pipeline(merged, source, backend)


class TestCreatePipeline:
    """Tests for create_pipeline option mapping."""

    def test_maps_settings(self, fast_settings, source_factory, backend_factory):
        pipeline = _pipeline(fast_settings, source_factory(), backend_factory())

        assert pipeline.options.mode == "batch"
        assert pipeline.options.queue_size == 4
        assert pipeline.options.settle_timeout == pytest.approx(0.005)
        assert pipeline.options.poll_interval == pytest.approx(0.001)
        assert pipeline.encoder.realtime is False
        assert pipeline.encoder.codec_preference == ("vp9", "vp8", "default")

    def test_invalid_mode(self, fast_settings, source_factory, backend_factory):
        with pytest.raises(ValueError):
            _pipeline(fast_settings, source_factory(), backend_factory(), pipeline={"mode": "parallel"})


class TestBatchRun:
    """Tests for the extract-then-encode route."""

    async def test_two_second_clip(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        """2 s at 24 fps -> 48 frames, 88200 audio frames, webm artifact."""
        from vidshift.models.output import SimilarityMethod

        source = source_factory()
        backend = backend_factory()
        pipeline = _pipeline(fast_settings, source, backend)

        result = await pipeline.run(sample_asset, sample_config, rng=np.random.default_rng(7))

        diff = result.technical_differences
        assert diff.frame_data_changes == 48
        assert diff.audio_data_changes == 88200
        assert diff.metadata_changes == 15
        # Only fps differs (30 -> 24)
        assert diff.parameter_changes == 1

        assert 95 <= result.visual_similarity <= 99
        assert result.similarity_method == SimilarityMethod.ESTIMATED
        assert result.stale_frames == 0
        assert result.processing_time_ms >= 0

        assert result.artifact.extension == "webm"
        assert result.artifact.mime_type == "video/webm; codecs=vp9"
        assert result.artifact.chunk_count == 49
        assert result.suggested_filename() == "transformed_clip.webm"

        session = backend.sessions[0]
        assert session.frames == list(range(48))
        assert session.params["audio"].length == 88200
        assert session.params["width"] == 640
        assert session.params["fps"] == 24
        assert len(session.params["metadata"]) == 15
        assert result.metadata_fields == session.params["metadata"]
        assert diff.metadata_changes == len(result.metadata_fields)

    async def test_upscale_to_720p(
        self, fast_settings, source_factory, backend_factory, sample_asset
    ):
        """640x360 30 fps webm at 1500 kbps -> 1280x720 24 fps mp4 at 2000 kbps."""
        from vidshift.models.media import Resolution
        from vidshift.models.transform import TransformConfig

        asset = sample_asset.model_copy(
            update={"name": "clip.webm", "bitrate": 1500, "mime_type": "video/webm"}
        )
        config = TransformConfig(
            fps=24,
            resolution=Resolution(width=1280, height=720),
            color_shift=5,
            noise_level=2,
        )
        backend = backend_factory()
        pipeline = _pipeline(fast_settings, source_factory(), backend)

        result = await pipeline.run(asset, config, rng=np.random.default_rng(11))

        diff = result.technical_differences
        # fps, width, height, bitrate and container type all differ
        assert diff.parameter_changes == 5
        assert diff.frame_data_changes == 48
        assert diff.audio_data_changes == 88200
        assert diff.metadata_changes == 15
        assert 95 <= result.visual_similarity <= 99

        session = backend.sessions[0]
        assert session.frames == list(range(48))
        assert (session.params["width"], session.params["height"]) == (1280, 720)
        assert session.params["bitrate_kbps"] == 2000
        assert result.artifact.extension == "webm"

    async def test_requested_format_does_not_change_extension(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        """A request for avi still yields the negotiated webm artifact."""
        from vidshift.models.media import OutputFormat

        config = sample_config.model_copy(update={"format": OutputFormat.AVI})
        pipeline = _pipeline(fast_settings, source_factory(), backend_factory())

        result = await pipeline.run(sample_asset, config)

        assert result.artifact.extension == "webm"
        assert result.technical_differences.parameter_changes == 2

    async def test_scrambling_off(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        config = sample_config.model_copy(update={"metadata_scrambling": False})
        backend = backend_factory()

        result = await _pipeline(fast_settings, source_factory(), backend).run(sample_asset, config)

        assert result.technical_differences.metadata_changes == 0
        assert backend.sessions[0].params["metadata"] == {}

    async def test_extraction_failure(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        """Failure at frame 10 aborts the run before any encoding."""
        from vidshift.errors import FrameExtractionError

        backend = backend_factory()
        pipeline = _pipeline(fast_settings, source_factory(fail_at=10), backend)

        with pytest.raises(FrameExtractionError) as exc_info:
            await pipeline.run(sample_asset, sample_config)

        assert exc_info.value.at_index == 10
        assert backend.sessions == []

    async def test_no_supported_codec(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        from vidshift.errors import NoSupportedCodecError

        backend = backend_factory(supported=())
        pipeline = _pipeline(fast_settings, source_factory(), backend)

        with pytest.raises(NoSupportedCodecError):
            await pipeline.run(sample_asset, sample_config)

        assert backend.sessions == []

    async def test_encoder_failure(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        from vidshift.errors import EncodingError

        backend = backend_factory(fail_at=5)
        pipeline = _pipeline(fast_settings, source_factory(), backend)

        with pytest.raises(EncodingError):
            await pipeline.run(sample_asset, sample_config)

        assert backend.sessions[0].aborted

    async def test_progress_stages(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        """Stages are reported in pipeline order and end with COMPLETE."""
        from vidshift.models.output import PipelineStage

        events = []
        pipeline = _pipeline(fast_settings, source_factory(), backend_factory())
        await pipeline.run(sample_asset, sample_config, on_progress=events.append)

        stages = []
        for event in events:
            if not stages or stages[-1] != event.stage:
                stages.append(event.stage)

        assert stages == [
            PipelineStage.EXTRACTING,
            PipelineStage.SYNTHESIZING_AUDIO,
            PipelineStage.ENCODING,
            PipelineStage.REPORTING,
            PipelineStage.COMPLETE,
        ]

    async def test_cancellation(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        from vidshift.errors import TransformationCancelledError

        cancel = asyncio.Event()
        backend = backend_factory()
        pipeline = _pipeline(fast_settings, source_factory(), backend)

        with pytest.raises(TransformationCancelledError):
            await pipeline.run(
                sample_asset,
                sample_config,
                on_progress=lambda event: cancel.set(),
                cancel_event=cancel,
            )

        assert backend.sessions == []

    async def test_measured_similarity(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        from vidshift.models.output import SimilarityMethod

        pipeline = _pipeline(
            fast_settings,
            source_factory(),
            backend_factory(),
            reporting={"similarity_mode": "measured", "similarity_samples": 4},
        )

        result = await pipeline.run(sample_asset, sample_config, rng=np.random.default_rng(3))

        assert result.similarity_method == SimilarityMethod.MEASURED
        assert 95 < result.visual_similarity < 100


class TestPipelinedRun:
    """Tests for the bounded producer/consumer route."""

    async def test_same_output_order(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        backend = backend_factory()
        pipeline = _pipeline(fast_settings, source_factory(), backend, pipeline={"mode": "pipelined"})

        result = await pipeline.run(sample_asset, sample_config)

        assert backend.sessions[0].frames == list(range(48))
        assert backend.sessions[0].closed
        assert result.technical_differences.frame_data_changes == 48
        assert result.technical_differences.audio_data_changes == 88200
        assert result.artifact.chunk_count == 49

    async def test_extraction_failure_aborts_encoder(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        """The producer's error is raised and the open session is aborted."""
        from vidshift.errors import FrameExtractionError

        backend = backend_factory()
        pipeline = _pipeline(
            fast_settings,
            source_factory(fail_at=10),
            backend,
            pipeline={"mode": "pipelined"},
        )

        with pytest.raises(FrameExtractionError) as exc_info:
            await pipeline.run(sample_asset, sample_config)

        assert exc_info.value.at_index == 10
        session = backend.sessions[0]
        assert session.aborted
        assert not session.closed

    async def test_encoder_failure_stops_producer(
        self, fast_settings, source_factory, backend_factory, sample_asset, sample_config
    ):
        from vidshift.errors import EncodingError

        source = source_factory()
        backend = backend_factory(fail_at=3)
        pipeline = _pipeline(fast_settings, source, backend, pipeline={"mode": "pipelined"})

        with pytest.raises(EncodingError):
            await pipeline.run(sample_asset, sample_config)

        assert len(source.seeks) < 48
