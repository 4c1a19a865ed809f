"""
Progress reporting for long-running digest runs.

Stages publish ProgressEvent values to a ProgressSink; the transport (a chat
reply, a log, a queue consumed by a UI) subscribes without the stages knowing
about it.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    message: str
    processed: Optional[int] = None
    total: Optional[int] = None
    wait_seconds: Optional[float] = None


class ProgressSink(ABC):

    @abstractmethod
    async def publish(self, event: ProgressEvent) -> None:
        raise NotImplementedError


class NullProgressSink(ProgressSink):
    async def publish(self, event: ProgressEvent) -> None:
        return None


class LoggingProgressSink(ProgressSink):
    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def publish(self, event: ProgressEvent) -> None:
        if event.processed is not None and event.total is not None:
            text = f"[{event.stage}] {event.message} ({event.processed}/{event.total})"
        else:
            text = f"[{event.stage}] {event.message}"
        logger.log(self.level, text, extra={"stage": event.stage})


class QueueProgressSink(ProgressSink):
    """Pushes events onto an asyncio.Queue for a consumer task."""

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    async def publish(self, event: ProgressEvent) -> None:
        await self.queue.put(event)


class CollectingProgressSink(ProgressSink):
    """Keeps every event in memory; handy for summaries and tests."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    async def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def stage(self, name: str) -> List[ProgressEvent]:
        return [e for e in self.events if e.stage == name]
