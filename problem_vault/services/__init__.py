"""Orchestration services for collection and the signal pipeline."""

from problem_vault.services.collection_service import (
    AlreadyRunningError,
    CollectionError,
    CollectionService,
    NotRunningError,
    UnknownSourceError,
)
from problem_vault.services.pipeline_service import SignalPipelineService

__all__ = [
    "AlreadyRunningError",
    "CollectionError",
    "CollectionService",
    "NotRunningError",
    "SignalPipelineService",
    "UnknownSourceError",
]
