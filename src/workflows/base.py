"""
Contains base class for digest pipelines
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from core.entities import AnalysisResult, DigestStats, DisplayUnit


@dataclass
class DigestRun:
    """Everything one pipeline run produced."""
    results: List[AnalysisResult] = field(default_factory=list)
    units: List[DisplayUnit] = field(default_factory=list)
    stats: DigestStats = field(default_factory=lambda: DigestStats(new_count=0))


class DigestPipeline(ABC):
    """
    Orchestrates fetching → enrichment → analysis → packaging
    for one user's bookmarks.
    """

    name: str

    @abstractmethod
    async def run(self, target: int) -> DigestRun:
        """
        Execute the pipeline for up to `target` new bookmarks.
        Fetch and throttle failures propagate; everything else recovers locally.
        """
        raise NotImplementedError
