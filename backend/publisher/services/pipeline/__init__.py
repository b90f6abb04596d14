"""
Pipeline module for video publishing.

This package contains the pipeline components:
- orchestrator: One publishing pass from sync to persisted outcome
- progress_manager: Step weights and download progress reporting

Example:
    from publisher.services.pipeline import PipelineOrchestrator

    async with PipelineOrchestrator.open(settings) as orchestrator:
        result = await orchestrator.run_pipeline_once(PipelineOptions(preview=True))

    # With in-memory collaborators
    orchestrator = PipelineOrchestrator(store, source, target, settings)
    result = await orchestrator.run_pipeline_once()
"""

from .orchestrator import (
    PipelineOrchestrator,
    PipelineError,
)
from .progress_manager import ProgressManager, ProgressCallback

__all__ = [
    # Main orchestrator
    "PipelineOrchestrator",
    "PipelineError",
    # Supporting classes
    "ProgressManager",
    "ProgressCallback",
]
