"""Asyncio pipeline feeding a ride's sample stream through the processor."""

import asyncio
import logging
from collections import deque
from concurrent.futures import Executor
from dataclasses import replace
from typing import Awaitable, Callable, Optional, Set

from .models import CalibrationUpdate, GaitSegment, MotionSample, RideOutcome
from .stream_processor import RideStreamProcessor

logger = logging.getLogger(__name__)

SegmentSink = Callable[[GaitSegment], Awaitable[None]]
CalibrationSink = Callable[[CalibrationUpdate], Awaitable[None]]


class CoalescingSampleQueue:
    """
    Single-consumer sample queue whose producers never block.

    When full, the oldest pending sample is dropped. Its GPS fix is carried
    onto the next pending sample if that one has none, so low-rate GPS is not
    lost to coalescing. Order is preserved and nothing is duplicated.
    """

    def __init__(self, maxsize: int):
        if maxsize < 1:
            raise ValueError(f"maxsize must be at least 1, got {maxsize}")
        self.maxsize = maxsize
        self.dropped = 0
        self._items = deque()
        self._available = asyncio.Event()
        self._closed = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def put_nowait(self, sample: MotionSample):
        if self._closed:
            raise RuntimeError("Queue is closed")
        if len(self._items) >= self.maxsize:
            oldest = self._items.popleft()
            self.dropped += 1
            if oldest.has_gps:
                if self._items and self._items[0].gps_speed is None:
                    self._items[0] = replace(
                        self._items[0], gps_speed=oldest.gps_speed, gps_accuracy=oldest.gps_accuracy
                    )
                elif not self._items and sample.gps_speed is None:
                    sample = replace(sample, gps_speed=oldest.gps_speed, gps_accuracy=oldest.gps_accuracy)
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning("Sample queue full, %d samples coalesced so far", self.dropped)
        self._items.append(sample)
        self._available.set()

    async def get(self) -> Optional[MotionSample]:
        """Next sample, or None once the queue is closed and drained."""
        while not self._items:
            if self._closed:
                return None
            self._available.clear()
            await self._available.wait()
        return self._items.popleft()

    def close(self):
        self._closed = True
        self._available.set()


class RidePipeline:
    """
    Runs one ride's processor on the event loop.

    Spectral analysis can be offloaded to an executor; windows are still
    completed strictly in order because the consumer awaits each one before
    taking the next sample. Closed segments are handed to ``segment_sink`` as
    background tasks so a slow sink never stalls classification.
    """

    def __init__(
        self,
        processor: RideStreamProcessor,
        segment_sink: Optional[SegmentSink] = None,
        calibration_sink: Optional[CalibrationSink] = None,
        executor: Optional[Executor] = None,
        offload_analysis: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            processor: Processor for this ride
            segment_sink: Coroutine function receiving each closed segment
            calibration_sink: Coroutine function receiving the ride's calibration update
            executor: Executor for spectral analysis; the loop's default when None
            offload_analysis: Run spectral analysis in the executor instead of inline
        """
        self.processor = processor
        self.segment_sink = segment_sink
        self.calibration_sink = calibration_sink
        self.executor = executor
        self.offload_analysis = offload_analysis
        self.queue = CoalescingSampleQueue(processor.config.QUEUE_MAXSIZE)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._consumer: Optional[asyncio.Task] = None
        self._sink_tasks: Set[asyncio.Task] = set()
        self._emitted = 0
        self._outcome: Optional[RideOutcome] = None

    async def __aenter__(self) -> "RidePipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop(drain=exc_type is None)

    @property
    def outcome(self) -> Optional[RideOutcome]:
        """The ride outcome once the pipeline has stopped."""
        return self._outcome

    async def start(self):
        if self._consumer is not None:
            raise RuntimeError("Pipeline already started")
        self._loop = asyncio.get_running_loop()
        self._consumer = asyncio.create_task(self._consume())

    def submit(self, sample: MotionSample):
        """Queue a sample. Must be called from the event loop thread."""
        self.queue.put_nowait(sample)

    def submit_threadsafe(self, sample: MotionSample):
        """Queue a sample from another thread, e.g. a sensor callback."""
        if self._loop is None:
            raise RuntimeError("Pipeline not started")
        self._loop.call_soon_threadsafe(self.queue.put_nowait, sample)

    async def _consume(self):
        try:
            while True:
                sample = await self.queue.get()
                if sample is None:
                    break
                window = self.processor.ingest(sample)
                if window is None:
                    continue
                if self.offload_analysis:
                    features = await self._loop.run_in_executor(self.executor, self.processor.analyze, window)
                else:
                    features = self.processor.analyze(window)
                closed = self.processor.complete(window, features)
                if closed is not None:
                    self._emit(closed)
                    self._emitted += 1
        except asyncio.CancelledError:
            logger.info("Pipeline cancelled, flushing open segment")
            self._finalize()
            raise

    def _emit(self, segment: GaitSegment):
        if self.segment_sink is None:
            return
        task = asyncio.create_task(self._deliver(segment))
        self._sink_tasks.add(task)
        task.add_done_callback(self._sink_tasks.discard)

    async def _deliver(self, segment: GaitSegment):
        try:
            await self.segment_sink(segment)
        except Exception:
            logger.exception("Segment sink failed for %s segment at %.2fs", segment.gait.name, segment.start_time)

    def _finalize(self) -> RideOutcome:
        if self._outcome is not None:
            return self._outcome
        outcome = self.processor.finish()
        outcome.dropped_samples += self.queue.dropped
        for segment in outcome.segments[self._emitted:]:
            self._emit(segment)
        self._emitted = len(outcome.segments)
        self._outcome = outcome
        return outcome

    async def stop(self, drain: bool = True) -> RideOutcome:
        """
        Finish the ride.

        Args:
            drain: Process every queued sample first; otherwise cancel the consumer

        Returns:
            RideOutcome of the ride
        """
        if self._consumer is not None:
            if drain:
                self.queue.close()
                await self._consumer
            elif not self._consumer.done():
                self._consumer.cancel()
                try:
                    await self._consumer
                except asyncio.CancelledError:
                    pass

        outcome = self._finalize()
        if self._sink_tasks:
            await asyncio.gather(*list(self._sink_tasks))

        if self.calibration_sink is not None and outcome.calibration_update is not None:
            try:
                await self.calibration_sink(outcome.calibration_update)
            except Exception:
                logger.exception("Calibration sink failed for %s", outcome.calibration_update.horse_id)
        return outcome
