"""In-process publish/subscribe of per-subject progress events."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator

from volley_coach.pipeline.models import ProgressEvent, ProgressStage

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class Subscription:
    """One observer's bounded event queue for a subject."""

    def __init__(self, broadcaster: ProgressBroadcaster, subject_id: str, queue_size: int) -> None:
        self.subject_id = subject_id
        self.dropped = 0
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    def offer(self, event: ProgressEvent) -> None:
        """Queue ``event``; on overflow drop it, unless it is terminal.

        A terminal event evicts the oldest queued event so iteration always ends.
        """

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            if event.terminal:
                self._queue.get_nowait()
                self._queue.put_nowait(event)
            logger.debug(
                "Dropped progress event for subject %s (slow subscriber, %d dropped)",
                self.subject_id,
                self.dropped,
            )

    async def get(self) -> ProgressEvent:
        return await self._queue.get()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._broadcaster.unsubscribe(self)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until a terminal event arrives."""

        try:
            while True:
                event = await self._queue.get()
                yield event
                if event.terminal:
                    return
        finally:
            self.close()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class ProgressBroadcaster:
    """Best-effort fan-out of progress events keyed by subject id.

    Publishing never blocks: a full subscriber queue drops the event for that
    subscriber only. Terminal events replace the oldest queued event instead.
    """

    def __init__(self, *, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, subject_id: str) -> Subscription:
        subscription = Subscription(self, subject_id, self._queue_size)
        self._subscribers[subject_id].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.subject_id)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._subscribers[subscription.subject_id]

    def subscriber_count(self, subject_id: str) -> int:
        return len(self._subscribers.get(subject_id, ()))

    def publish(self, subject_id: str, event: ProgressEvent) -> None:
        for subscription in tuple(self._subscribers.get(subject_id, ())):
            subscription.offer(event)

    def reporter(self, subject_id: str) -> ProgressReporter:
        """Start a new run's progress sequence for ``subject_id``."""

        return ProgressReporter(self, subject_id)


class ProgressReporter:
    """Publishes one run's events with a non-decreasing progress percent.

    The terminal ``error`` event is published as-is (progress 0).
    """

    def __init__(self, broadcaster: ProgressBroadcaster, subject_id: str) -> None:
        self.subject_id = subject_id
        self.high_water = 0
        self._broadcaster = broadcaster

    def emit(self, stage: ProgressStage, progress_percent: int, message: str) -> ProgressEvent:
        if stage is ProgressStage.ERROR:
            percent = 0
        else:
            percent = min(100, max(self.high_water, progress_percent))
            self.high_water = percent
        event = ProgressEvent(
            subject_id=self.subject_id,
            stage=stage,
            progress_percent=percent,
            message=message,
        )
        try:
            self._broadcaster.publish(self.subject_id, event)
        except Exception:  # noqa: BLE001
            logger.warning("Progress publish failed for subject %s", self.subject_id, exc_info=True)
        return event
