"""Agent Secrets.

Scoped, encrypted secret storage for an agent, and ephemeral web forms that
collect secrets from humans.
"""
from .errors import (
    CryptoError,
    EncryptionUnavailableError,
    InfrastructureError,
    SecretsError,
    SessionClosedError,
    SubmissionError,
)
from .service import SecretsService
from .version import __version__

__all__ = [
    "CryptoError",
    "EncryptionUnavailableError",
    "InfrastructureError",
    "SecretsError",
    "SecretsService",
    "SessionClosedError",
    "SubmissionError",
    "__version__",
]
