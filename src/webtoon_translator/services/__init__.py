"""Services package for webtoon translator."""

from webtoon_translator.services.batch_orchestrator import (
    BatchConfig,
    BatchOrchestrator,
    WorkItem,
)
from webtoon_translator.services.credential_pool import CredentialPoolManager
from webtoon_translator.services.response_extractor import extract

__all__ = [
    "BatchConfig",
    "BatchOrchestrator",
    "CredentialPoolManager",
    "WorkItem",
    "extract",
]
