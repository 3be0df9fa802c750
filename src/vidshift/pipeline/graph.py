"""
Transformation Pipeline
=======================

LangGraph workflow wiring the components into one run.

LangGraph is used for CONTROL FLOW only. Each node is one pipeline stage;
the route is chosen by the configured mode.

Graph Structure:
    batch:
        START → scramble_metadata → extract_frames → synthesize_audio
              → encode → report → END

    pipelined:
        START → scramble_metadata → synthesize_audio
              → stream → report → END

    In pipelined mode the stream node runs the Frame Scheduler and the
    Streaming Encoder concurrently, connected by a bounded FrameQueue.

Design Rules:
    - The run is driven only by the TransformConfig passed in
    - Any component error propagates unchanged; no result is produced
    - Cancellation is cooperative via an asyncio.Event
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypedDict, Union

import numpy as np
from langgraph.graph import END, START, StateGraph

from vidshift.audio.synthesis import AudioSampleBuffer, synthesize_audio
from vidshift.encoder.backend import EncoderBackend, PyAVBackend
from vidshift.encoder.codecs import DEFAULT_CODEC_PREFERENCE
from vidshift.encoder.streaming import StreamingEncoder
from vidshift.errors import TransformationCancelledError
from vidshift.metadata.scrambler import ScrambledMetadata, scramble_metadata
from vidshift.models.media import SourceAsset
from vidshift.models.output import (
    EncodedArtifact,
    PipelineStage,
    ProgressEvent,
    SimilarityMethod,
    TransformationResult,
)
from vidshift.models.transform import TransformConfig
from vidshift.probe.metadata import probe_media
from vidshift.reporting.differences import (
    estimate_visual_similarity,
    measure_visual_similarity,
    summarize_differences,
)
from vidshift.stream.frame import FrameBuffer
from vidshift.stream.queue import FrameQueue
from vidshift.stream.scheduler import FrameScheduler, compute_total_frames
from vidshift.stream.source import FrameSource


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class PipelineOptions:
    """
    Service-level knobs for a pipeline.

    Attributes:
        mode: "batch" or "pipelined"
        queue_size: FrameQueue capacity in pipelined mode
        progress_steps: Progress events per stage
        seek_tolerance: Scheduler settle tolerance (s)
        settle_timeout: Scheduler bounded settle wait (s)
        poll_interval: Scheduler position poll interval (s)
        sample_rate: Replacement audio sample rate
        channels: Replacement audio channel count
        similarity_mode: "estimated" or "measured"
        similarity_samples: Frame pairs kept for measured similarity
    """

    mode: str = "batch"
    queue_size: int = 32
    progress_steps: int = 10
    seek_tolerance: float = 0.01
    settle_timeout: float = 0.05
    poll_interval: float = 0.004
    sample_rate: int = 44100
    channels: int = 2
    similarity_mode: str = "estimated"
    similarity_samples: int = 8

    def __post_init__(self) -> None:
        if self.mode not in ("batch", "pipelined"):
            raise ValueError(f"Unknown pipeline mode: {self.mode}")
        if self.similarity_mode not in ("estimated", "measured"):
            raise ValueError(f"Unknown similarity mode: {self.similarity_mode}")


@dataclass
class RunContext:
    """Per-run collaborators that are not part of the graph's data."""

    rng: np.random.Generator
    on_progress: Optional[ProgressCallback] = None
    cancel_event: Optional[asyncio.Event] = None
    started_at: float = field(default_factory=time.monotonic)

    def emit(self, stage: PipelineStage, fraction: float, message: str = "") -> None:
        if self.on_progress is not None:
            self.on_progress(ProgressEvent(stage=stage, fraction=fraction, message=message))

    def check_cancelled(self, where: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(f"Run cancelled before {where}")
            raise TransformationCancelledError(f"Cancelled before {where}")


class PipelineState(TypedDict):
    """
    State passed through the pipeline graph.

    Attributes:
        mode: Route selector
        asset: Probed source
        config: Run parameters
        context: Per-run collaborators
        metadata: Scrambled header fields
        frames: Transformed frames (batch mode only, emptied after encode)
        frames_produced: Number of frames extracted
        stale_frames: Frames sampled after the settle wait elapsed
        samples: (original, transformed) pixel pairs for measured similarity
        audio: Replacement audio track
        artifact: Encoded blob
        result: Final TransformationResult
    """

    mode: str
    asset: SourceAsset
    config: TransformConfig
    context: RunContext
    metadata: Optional[ScrambledMetadata]
    frames: List[FrameBuffer]
    frames_produced: int
    stale_frames: int
    samples: List[Tuple[np.ndarray, np.ndarray]]
    audio: Optional[AudioSampleBuffer]
    artifact: Optional[EncodedArtifact]
    result: Optional[TransformationResult]


class PairSampler:
    """
    Keeps evenly spaced (original, transformed) pixel pairs.

    Used as the scheduler's sample hook when similarity is measured.
    """

    def __init__(self, total_frames: int, max_samples: int) -> None:
        if total_frames > 0:
            picks = np.linspace(0, total_frames - 1, num=min(max_samples, total_frames))
            self._indices = {int(round(i)) for i in picks}
        else:
            self._indices = set()
        self.pairs: List[Tuple[np.ndarray, np.ndarray]] = []

    def __call__(self, original: FrameBuffer, transformed: FrameBuffer) -> None:
        if original.index in self._indices:
            self.pairs.append((original.pixels, transformed.pixels.copy()))


class TransformationPipeline:
    """
    One configured pipeline over one frame source.

    Usage:
        pipeline = TransformationPipeline(source, StreamingEncoder(PyAVBackend()))
        result = await pipeline.run(asset, TransformConfig())
    """

    def __init__(
        self,
        frame_source: FrameSource,
        encoder: StreamingEncoder,
        options: Optional[PipelineOptions] = None,
    ) -> None:
        self.frame_source = frame_source
        self.encoder = encoder
        self.options = options or PipelineOptions()

        self._graph = self._build_graph()

        logger.info(f"TransformationPipeline initialized (mode={self.options.mode})")

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(PipelineState)

        workflow.add_node("scramble_metadata", self._scramble_metadata_node)
        workflow.add_node("extract_frames", self._extract_frames_node)
        workflow.add_node("synthesize_audio", self._synthesize_audio_node)
        workflow.add_node("encode", self._encode_node)
        workflow.add_node("stream", self._stream_node)
        workflow.add_node("report", self._report_node)

        workflow.add_edge(START, "scramble_metadata")
        workflow.add_conditional_edges(
            "scramble_metadata",
            self._route_mode,
            {"batch": "extract_frames", "pipelined": "synthesize_audio"},
        )
        workflow.add_edge("extract_frames", "synthesize_audio")
        workflow.add_conditional_edges(
            "synthesize_audio",
            self._route_mode,
            {"batch": "encode", "pipelined": "stream"},
        )
        workflow.add_edge("encode", "report")
        workflow.add_edge("stream", "report")
        workflow.add_edge("report", END)

        return workflow.compile()

    @staticmethod
    def _route_mode(state: PipelineState) -> str:
        return state["mode"]

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    async def _scramble_metadata_node(self, state: PipelineState) -> Dict[str, Any]:
        ctx = state["context"]
        ctx.check_cancelled("metadata scrambling")
        return {"metadata": scramble_metadata(state["config"], ctx.rng)}

    async def _extract_frames_node(self, state: PipelineState) -> Dict[str, Any]:
        ctx = state["context"]
        asset, config = state["asset"], state["config"]

        scheduler = self._make_scheduler()
        sampler = self._make_sampler(asset, config)

        frames: List[FrameBuffer] = []
        async for frame in scheduler.frames(
            asset.duration,
            config,
            rng=ctx.rng,
            on_progress=ctx.on_progress,
            cancel_event=ctx.cancel_event,
            sample_hook=sampler,
        ):
            frames.append(frame)

        return {
            "frames": frames,
            "frames_produced": len(frames),
            "stale_frames": scheduler.stale_count,
            "samples": sampler.pairs if sampler else [],
        }

    async def _synthesize_audio_node(self, state: PipelineState) -> Dict[str, Any]:
        ctx = state["context"]
        ctx.check_cancelled("audio synthesis")

        audio = synthesize_audio(
            state["asset"].duration,
            sample_rate=self.options.sample_rate,
            channels=self.options.channels,
            rng=ctx.rng,
        )
        ctx.emit(
            PipelineStage.SYNTHESIZING_AUDIO,
            1.0,
            f"Synthesized {audio.channels}ch x {audio.length} audio samples",
        )
        return {"audio": audio}

    async def _encode_node(self, state: PipelineState) -> Dict[str, Any]:
        ctx = state["context"]
        ctx.check_cancelled("encoding")
        config = state["config"]
        frames = state["frames"]

        artifact = await self.encoder.encode(
            frames,
            width=config.resolution.width,
            height=config.resolution.height,
            fps=config.fps,
            bitrate_kbps=config.bitrate,
            audio=state["audio"],
            metadata=state["metadata"].fields,
            total_frames=len(frames),
            on_progress=ctx.on_progress,
            cancel_event=ctx.cancel_event,
        )

        # Frames are owned by the encoder from here on
        return {"artifact": artifact, "frames": []}

    async def _stream_node(self, state: PipelineState) -> Dict[str, Any]:
        ctx = state["context"]
        asset, config = state["asset"], state["config"]

        scheduler = self._make_scheduler()
        sampler = self._make_sampler(asset, config)
        queue = FrameQueue(maxsize=self.options.queue_size)

        async def produce() -> None:
            async for frame in scheduler.frames(
                asset.duration,
                config,
                rng=ctx.rng,
                on_progress=ctx.on_progress,
                cancel_event=ctx.cancel_event,
                sample_hook=sampler,
            ):
                await queue.put(frame)
            await queue.close()

        producer = asyncio.create_task(produce())
        consumer = asyncio.create_task(self.encoder.encode(
            queue,
            width=config.resolution.width,
            height=config.resolution.height,
            fps=config.fps,
            bitrate_kbps=config.bitrate,
            audio=state["audio"],
            metadata=state["metadata"].fields,
            total_frames=compute_total_frames(asset.duration, config.fps),
            on_progress=ctx.on_progress,
            cancel_event=ctx.cancel_event,
        ))

        try:
            done, _ = await asyncio.wait(
                {producer, consumer},
                return_when=asyncio.FIRST_EXCEPTION,
            )
            # The producer's failure is the root cause when both fail
            for task in (producer, consumer):
                if task in done and task.exception() is not None:
                    raise task.exception()
        finally:
            for task in (producer, consumer):
                if not task.done():
                    task.cancel()
            await asyncio.gather(producer, consumer, return_exceptions=True)

        logger.debug(f"Frame queue drained: {queue.metrics()}")

        return {
            "artifact": consumer.result(),
            "frames_produced": scheduler.produced,
            "stale_frames": scheduler.stale_count,
            "samples": sampler.pairs if sampler else [],
        }

    async def _report_node(self, state: PipelineState) -> Dict[str, Any]:
        ctx = state["context"]
        asset, config = state["asset"], state["config"]
        ctx.emit(PipelineStage.REPORTING, 0.0, "Analyzing differences")

        summary = summarize_differences(
            asset,
            config,
            frames_produced=state["frames_produced"],
            audio_length=state["audio"].length,
            metadata_changes=state["metadata"].altered_count,
        )

        samples = state["samples"]
        if self.options.similarity_mode == "measured" and samples:
            similarity = measure_visual_similarity(samples)
            method = SimilarityMethod.MEASURED
        else:
            similarity = estimate_visual_similarity(ctx.rng)
            method = SimilarityMethod.ESTIMATED

        result = TransformationResult(
            original=asset,
            artifact=state["artifact"],
            technical_differences=summary,
            visual_similarity=similarity,
            similarity_method=method,
            processing_time_ms=int((time.monotonic() - ctx.started_at) * 1000),
            stale_frames=state["stale_frames"],
            metadata_fields=state["metadata"].fields,
        )

        ctx.emit(PipelineStage.COMPLETE, 1.0, "Transformation complete")
        return {"result": result, "samples": []}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _make_scheduler(self) -> FrameScheduler:
        return FrameScheduler(
            self.frame_source,
            seek_tolerance=self.options.seek_tolerance,
            settle_timeout=self.options.settle_timeout,
            poll_interval=self.options.poll_interval,
            progress_steps=self.options.progress_steps,
        )

    def _make_sampler(self, asset: SourceAsset, config: TransformConfig) -> Optional[PairSampler]:
        if self.options.similarity_mode != "measured":
            return None
        return PairSampler(
            compute_total_frames(asset.duration, config.fps),
            self.options.similarity_samples,
        )

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def run(
        self,
        asset: SourceAsset,
        config: TransformConfig,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> TransformationResult:
        """
        Execute one transformation.

        Args:
            asset: Probed source description
            config: Run parameters
            on_progress: Presentation-only progress receiver
            cancel_event: Set to abort the run cooperatively
            rng: Random generator (seed for reproducible output)

        Returns:
            TransformationResult for a fully successful run

        Raises:
            TransformationError: Any component failure, unchanged
        """
        context = RunContext(
            rng=rng if rng is not None else np.random.default_rng(),
            on_progress=on_progress,
            cancel_event=cancel_event,
        )

        initial: PipelineState = {
            "mode": self.options.mode,
            "asset": asset,
            "config": config,
            "context": context,
            "metadata": None,
            "frames": [],
            "frames_produced": 0,
            "stale_frames": 0,
            "samples": [],
            "audio": None,
            "artifact": None,
            "result": None,
        }

        logger.info(
            f"Transforming {asset.name}: {asset.width}x{asset.height}@{asset.fps:g} -> "
            f"{config.resolution.label}@{config.fps} {config.bitrate}kbps "
            f"(mode={self.options.mode})"
        )

        final = await self._graph.ainvoke(initial)
        result: TransformationResult = final["result"]

        logger.info(
            f"Transformation complete: {result.technical_differences.frame_data_changes} frames, "
            f"{result.artifact.size_bytes} bytes, similarity {result.visual_similarity:g}% "
            f"({result.similarity_method.value}), {result.processing_time_ms}ms"
        )
        return result


def create_pipeline(
    config: Dict[str, Any],
    frame_source: FrameSource,
    backend: Optional[EncoderBackend] = None,
) -> TransformationPipeline:
    """
    Create a pipeline from a settings dictionary.

    Args:
        config: Settings dictionary (Settings.model_dump() layout)
        frame_source: Decoder for the asset
        backend: Encoder runtime (defaults to PyAV)

    Returns:
        Configured TransformationPipeline
    """
    pipeline_config = config.get("pipeline", {})
    scheduler_config = config.get("scheduler", {})
    encoder_config = config.get("encoder", {})
    audio_config = config.get("audio", {})
    reporting_config = config.get("reporting", {})

    options = PipelineOptions(
        mode=pipeline_config.get("mode", "batch"),
        queue_size=pipeline_config.get("queue_size", 32),
        progress_steps=pipeline_config.get("progress_steps", 10),
        seek_tolerance=scheduler_config.get("seek_tolerance_seconds", 0.01),
        settle_timeout=scheduler_config.get("settle_timeout_ms", 50.0) / 1000.0,
        poll_interval=scheduler_config.get("poll_interval_ms", 4.0) / 1000.0,
        sample_rate=audio_config.get("sample_rate", 44100),
        channels=audio_config.get("channels", 2),
        similarity_mode=reporting_config.get("similarity_mode", "estimated"),
        similarity_samples=reporting_config.get("similarity_samples", 8),
    )

    if backend is None:
        backend = PyAVBackend(
            audio_codec_preference=encoder_config.get(
                "audio_codec_preference", ("libopus", "libvorbis")
            ),
        )

    encoder = StreamingEncoder(
        backend,
        codec_preference=encoder_config.get("codec_preference", DEFAULT_CODEC_PREFERENCE),
        realtime=encoder_config.get("realtime_pacing", True),
        progress_steps=options.progress_steps,
    )

    return TransformationPipeline(frame_source, encoder, options)


async def transform_file(
    path: Union[str, Path, bytes],
    config: Optional[TransformConfig] = None,
    *,
    filename: Optional[str] = None,
    settings: Optional[Dict[str, Any]] = None,
    backend: Optional[EncoderBackend] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[asyncio.Event] = None,
    rng: Optional[np.random.Generator] = None,
) -> TransformationResult:
    """
    Probe, transform and release one asset.

    Args:
        path: Video file path or raw upload bytes
        config: Run parameters; None derives them from the source
        filename: Name for MIME detection when path is bytes
        settings: Settings dictionary for probe/pipeline knobs
        backend: Encoder runtime (defaults to PyAV)
        on_progress: Progress receiver
        cancel_event: Cooperative cancellation flag
        rng: Random generator

    Returns:
        TransformationResult
    """
    settings = settings or {}
    probe_config = settings.get("probe", {})

    media = await probe_media(
        path,
        filename=filename,
        timeout=probe_config.get("timeout_seconds", 10.0),
        default_fps=probe_config.get("default_fps", 30.0),
    )
    with media:
        if config is None:
            config = TransformConfig.from_source(media.asset)
        source = media.open_frame_source()
        pipeline = create_pipeline(settings, source, backend)
        return await pipeline.run(
            media.asset,
            config,
            on_progress=on_progress,
            cancel_event=cancel_event,
            rng=rng,
        )
