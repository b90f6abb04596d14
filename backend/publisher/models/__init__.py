"""
Pydantic models for the video publishing pipeline.

Exports:
    - Record and inventory models (VideoRecord, InventoryItem)
    - Run results (FetchResult, PublishResult, ReconcileResult, PipelineRunResult)
"""

from publisher.models.schemas import (
    FetchResult,
    InventoryItem,
    PipelineOptions,
    PipelineRunResult,
    PipelineStep,
    Privacy,
    PublishMetadata,
    PublishResult,
    ReconcileResult,
    RecordFilter,
    RecordSort,
    RecordStats,
    RecordStatus,
    VideoRecord,
)

__all__ = [
    # Records
    "InventoryItem",
    "VideoRecord",
    "RecordStatus",
    "RecordFilter",
    "RecordSort",
    "RecordStats",
    "Privacy",
    # Results
    "FetchResult",
    "PublishMetadata",
    "PublishResult",
    "ReconcileResult",
    "PipelineOptions",
    "PipelineRunResult",
    "PipelineStep",
]
