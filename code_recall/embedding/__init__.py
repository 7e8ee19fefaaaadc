"""
Text embedding for semantic recall.

The model runs in a separate worker process (see ``worker``) so that
its native runtime cannot take the host process down with it.
"""

from .base import (
    Embedder,
    EmbeddingError,
    EmbeddingWorkerError,
)

from .model import (
    DEFAULT_DIMENSIONS,
    DEFAULT_MODEL,
    SentenceTransformerEmbedder,
)

from .service import (
    EmbeddingService,
    default_worker_command,
)


__all__ = [
    # Interfaces
    "Embedder",
    "EmbeddingError",
    "EmbeddingWorkerError",
    # Local model
    "DEFAULT_DIMENSIONS",
    "DEFAULT_MODEL",
    "SentenceTransformerEmbedder",
    # Worker-backed service
    "EmbeddingService",
    "default_worker_command",
]
