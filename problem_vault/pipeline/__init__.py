"""Extraction, embedding, deduplication and scoring of collected signals."""

from problem_vault.pipeline.deduplicator import ProblemDeduplicator, confidence_for
from problem_vault.pipeline.embedding import EmbeddingService
from problem_vault.pipeline.extractor import LlmProblemExtractor
from problem_vault.pipeline.repository import PromptRepository, VaultRepository
from problem_vault.pipeline.schemas import (
    DeduplicationResult,
    Evidence,
    ExtractedProblem,
    PipelineResult,
    VaultEntry,
)
from problem_vault.pipeline.scoring import VaultScoringService
from problem_vault.pipeline.verifier import LlmDuplicateVerifier

__all__ = [
    "DeduplicationResult",
    "EmbeddingService",
    "Evidence",
    "ExtractedProblem",
    "LlmDuplicateVerifier",
    "LlmProblemExtractor",
    "PipelineResult",
    "ProblemDeduplicator",
    "PromptRepository",
    "VaultEntry",
    "VaultRepository",
    "VaultScoringService",
    "confidence_for",
]
