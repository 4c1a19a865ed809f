"""
Workflows module - Pipeline orchestration for bookmark digests, stats and actionable analysis.
"""
from workflows.base import DigestPipeline, DigestRun
from workflows.bookmark_digest import BookmarkDigestPipeline
from workflows.bookmark_stats import BookmarkStatsReport
from workflows.make_actionable import MakeActionableWorkflow
from workflows.pipeline_factory import (
    create_actionable_workflow,
    create_deliveries,
    create_pipeline,
    create_stats_report,
)

__all__ = [
    "DigestPipeline",
    "DigestRun",
    "BookmarkDigestPipeline",
    "BookmarkStatsReport",
    "MakeActionableWorkflow",
    "create_actionable_workflow",
    "create_deliveries",
    "create_pipeline",
    "create_stats_report",
]
