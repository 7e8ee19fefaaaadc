"""
Embedding interfaces and errors.
"""

from abc import ABC, abstractmethod
from typing import List


class EmbeddingError(Exception):
    """Raised when text could not be embedded."""
    pass


class EmbeddingWorkerError(EmbeddingError):
    """Raised when the embedding worker process fails or goes away."""
    pass


class Embedder(ABC):
    """Abstract base class for asynchronous text embedders."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for text.

        Args:
            text: The text to embed

        Returns:
            A unit-normalized vector
        """
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts.

        Returns:
            One vector per input text, in input order
        """
        pass

    @abstractmethod
    async def dispose(self):
        """Release the resources held by the embedder."""
        pass
