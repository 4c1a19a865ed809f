"""
Module to contain base class for Delivery channels
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from core.entities import DisplayUnit


class DeliveryError(Exception):
    """Raised when a channel fails to send."""


@dataclass(frozen=True)
class DeliveryReport:
    channel: str
    sent: int
    dropped: int = 0


class DeliveryChannel(ABC):
    """
    Base interface for all delivery channels.
    """

    name: str
    max_units: int = 10

    @abstractmethod
    async def deliver(
        self,
        *,
        digest_date: str,
        units: List[DisplayUnit],
        label: str = "bookmark_digest",
    ) -> DeliveryReport:
        """
        Deliver the units, in order. `label` names the report (digest, stats, ...).
        Channels enforce their own cap on units per send.
        Must raise DeliveryError on failure (handled upstream).
        """
        raise NotImplementedError
