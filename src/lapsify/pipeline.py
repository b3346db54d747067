"""Order-preserving parallel frame pipeline.

Architecture:
    ┌─ Worker pool (N threads) ─────────────────────┐
    │  For each FrameJob, in any order:             │
    │    decode → transform → sink.encode_frame     │
    └──────────────────────┬────────────────────────┘
                           ↓ FrameResult
                ┌─────────────────────┐
                │  OrderingBuffer     │  holds out-of-order results
                └──────────┬──────────┘
                           ↓ ascending frame index
                    sink.write (single thread)

Dispatch is incremental: a job is only submitted while it is within a
look-ahead window of the next frame the sink is waiting for, so a slow frame
cannot make the buffer grow without bound. The first failure stops dispatch,
in-flight jobs are drained, partial output is discarded and the failure is
raised as a PipelineError carrying the frame index.
"""

import logging
import os
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from lapsify.codec import ImageCodec, PillowCodec
from lapsify.errors import ConfigurationError, DecodeError, LapsifyError, PipelineCancelled, PipelineError
from lapsify.models import FrameJob, FrameResult, PipelineSummary
from lapsify.ordering import CancellationToken, OrderingBuffer, ProgressCounter
from lapsify.sinks import OutputSink
from lapsify.transform import apply_adjustments

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def default_worker_count() -> int:
    """One worker per available CPU."""
    return os.cpu_count() or 1


class Pipeline:
    """Runs FrameJobs across a thread pool and emits results in frame order.

    Args:
        worker_count: Number of worker threads; None uses one per CPU
        codec: Image codec used to decode sources (default: PillowCodec)
        lookahead: How many frames past the next frame to emit may be
            dispatched; default is 4 per worker

    Raises:
        ConfigurationError: If worker_count or lookahead is below 1
    """

    def __init__(self, worker_count: int | None = None, codec: ImageCodec | None = None, lookahead: int | None = None):
        if worker_count is None:
            worker_count = default_worker_count()
        if worker_count < 1:
            raise ConfigurationError(f"Worker count must be at least 1, got {worker_count}")
        if lookahead is not None and lookahead < 1:
            raise ConfigurationError(f"Look-ahead must be at least 1, got {lookahead}")

        self.worker_count = worker_count
        self.codec = codec or PillowCodec()
        self.lookahead = lookahead or worker_count * 4

    def process_job(
        self,
        job: FrameJob,
        sink: OutputSink,
        token: CancellationToken,
        progress: ProgressCounter | None = None,
    ) -> FrameResult:
        """Decode, transform and encode one frame (called in worker thread).

        Failures are returned in FrameResult.error rather than raised so the
        emitting thread can report them with the frame index.
        """
        try:
            token.raise_if_cancelled(job.index)
            image = self.codec.decode(job.source_path)

            if job.image_size is not None:
                height, width = image.shape[:2]
                if (width, height) != tuple(job.image_size):
                    raise DecodeError(
                        f"Decoded size {width}x{height} does not match probed size "
                        f"{job.image_size[0]}x{job.image_size[1]}",
                        job.source_path,
                    )

            pixels = apply_adjustments(image, job.rect, job.adjustments)
            frame = sink.encode_frame(pixels)
        except Exception as e:
            return FrameResult(index=job.index, source_path=job.source_path, error=e)

        if progress is not None:
            progress.increment()
        return FrameResult(index=job.index, source_path=job.source_path, frame=frame)

    @staticmethod
    def _check_indices(jobs: Sequence[FrameJob]) -> None:
        for previous, current in zip(jobs, jobs[1:]):
            if current.index != previous.index + 1:
                raise ConfigurationError(
                    f"Frame jobs must have consecutive ascending indices; {current.index} follows {previous.index}"
                )

    def run(
        self,
        jobs: Sequence[FrameJob],
        sink: OutputSink,
        cancel_token: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> PipelineSummary:
        """Process every job and deliver the frames to the sink in index order.

        Args:
            jobs: Validated jobs with consecutive ascending indices
            sink: Destination for the frames
            cancel_token: Optional token; cancelling it stops the run
            progress_callback: Optional callback(frames_written, total_frames),
                called after each frame reaches the sink

        Returns:
            PipelineSummary

        Raises:
            ConfigurationError: If there are no jobs or indices are not consecutive
            PipelineCancelled: If the token was cancelled; partial output is discarded
            PipelineError: On the first decode/transform/encode failure; partial
                output is discarded
        """
        jobs = list(jobs)
        if not jobs:
            raise ConfigurationError("No frames to process")
        self._check_indices(jobs)

        token = cancel_token or CancellationToken()
        start_time = time.perf_counter()
        logger.info(
            "Processing %d frames (%d-%d) with %d workers",
            len(jobs),
            jobs[0].index,
            jobs[-1].index,
            self.worker_count,
        )

        try:
            sink.open()
        except LapsifyError as e:
            logger.error("Cannot open output: %s", e)
            raise PipelineError(None, e) from e

        try:
            written = self._process_all(jobs, sink, token, progress_callback)
        except BaseException:
            sink.abort()
            raise

        try:
            sink.close()
        except LapsifyError as e:
            sink.abort()
            logger.error("Output failed: %s", e)
            raise PipelineError(None, e) from e

        elapsed = time.perf_counter() - start_time
        logger.info("Processed %d frames in %.2fs", written, elapsed)
        return PipelineSummary(frames_written=written, worker_count=self.worker_count, elapsed_seconds=elapsed)

    def _process_all(
        self,
        jobs: list[FrameJob],
        sink: OutputSink,
        token: CancellationToken,
        progress_callback: ProgressCallback | None,
    ) -> int:
        total = len(jobs)
        buffer: OrderingBuffer[FrameResult] = OrderingBuffer(jobs[0].index)
        progress = ProgressCounter(total)
        max_in_flight = self.worker_count * 2

        written = 0
        next_job = 0
        failure: tuple[int | None, BaseException] | None = None
        cancelled_at: int | None = None
        in_flight: dict[Future, FrameJob] = {}

        with ThreadPoolExecutor(max_workers=self.worker_count, thread_name_prefix="lapsify-worker") as executor:
            try:
                while True:
                    stopping = failure is not None or token.cancelled
                    while (
                        not stopping
                        and next_job < total
                        and len(in_flight) < max_in_flight
                        and jobs[next_job].index < buffer.next_index + self.lookahead
                    ):
                        job = jobs[next_job]
                        in_flight[executor.submit(self.process_job, job, sink, token, progress)] = job
                        next_job += 1
                        stopping = token.cancelled

                    if not in_flight:
                        break

                    if stopping:
                        # Drop queued jobs that have not started yet
                        for future in in_flight:
                            future.cancel()

                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in sorted(done, key=lambda f: in_flight[f].index):
                        job = in_flight.pop(future)
                        if future.cancelled() or failure is not None:
                            continue

                        result = future.result()
                        if isinstance(result.error, PipelineCancelled):
                            cancelled_at = job.index if cancelled_at is None else min(cancelled_at, job.index)
                            continue
                        if result.error is not None:
                            logger.error("Frame %d (%s) failed: %s", job.index, job.source_path, result.error)
                            failure = (job.index, result.error)
                            continue

                        for ready in buffer.push(result):
                            try:
                                sink.write(ready)
                            except LapsifyError as e:
                                logger.error("Writing frame %d failed: %s", ready.index, e)
                                failure = (ready.index, e)
                                break
                            written += 1
                            if progress_callback:
                                progress_callback(written, total)
            except BaseException:
                token.cancel()
                for future in in_flight:
                    future.cancel()
                raise

        buffer.clear()
        if failure is not None:
            frame_index, cause = failure
            raise PipelineError(frame_index, cause) from cause
        if cancelled_at is not None or (token.cancelled and written < total):
            logger.warning("Pipeline cancelled after %d of %d frames", written, total)
            raise PipelineCancelled(cancelled_at)

        logger.debug("Decoded %d of %d frames, wrote %d", progress.value, progress.total, written)
        return written
