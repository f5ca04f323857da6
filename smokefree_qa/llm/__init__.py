"""Model provider access: key rotation, quota, retries and prompts."""

from smokefree_qa.llm.credentials import (
    CredentialLease,
    KeyRotationManager,
    RotationCursor,
    build_credentials,
)
from smokefree_qa.llm.provider import GeminiProvider, ModelProvider
from smokefree_qa.llm.quota import QuotaTracker
from smokefree_qa.llm.retry import RetryOrchestrator

__all__ = [
    "CredentialLease",
    "GeminiProvider",
    "KeyRotationManager",
    "ModelProvider",
    "QuotaTracker",
    "RetryOrchestrator",
    "RotationCursor",
    "build_credentials",
]
