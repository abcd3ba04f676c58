"""External bibliographic source clients."""

from app.services.connectors.base import (
    ExternalCandidate,
    ExternalSourceClient,
    ExternalSourceError,
    SourceFault,
    SourceMalformed,
    SourceTimeout,
    SourceUnavailable,
)

__all__ = [
    "ExternalCandidate",
    "ExternalSourceClient",
    "ExternalSourceError",
    "SourceFault",
    "SourceMalformed",
    "SourceTimeout",
    "SourceUnavailable",
]
