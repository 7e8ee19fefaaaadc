"""
Local sentence-transformers model.

This runs inside the embedding worker process; the host process talks
to it through EmbeddingService instead of loading it directly.
"""

import logging
from typing import List, Optional


logger = logging.getLogger(__name__)


DEFAULT_MODEL = "all-MiniLM-L6-v2"
DEFAULT_DIMENSIONS = 384


class SentenceTransformerEmbedder:
    """
    Sentence-transformers based embedder.

    Mean-pooled, L2-normalized sentence embeddings from a pre-trained
    transformer model. The model is loaded once and reused.
    """

    def __init__(self, model_name: Optional[str] = None, device: Optional[str] = None):
        """
        Args:
            model_name: Name of the model to use. Defaults to MiniLM.
            device: Torch device, or None to let the library choose.
        """
        self.model_name = model_name or DEFAULT_MODEL
        self.device = device
        self._model = None

    @property
    def model(self):
        """Lazy load the model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self.model_name, device=self.device)
            logger.info(f"Loaded embedding model: {self.model_name}")
        return self._model

    def load(self):
        """Load the model now instead of on first use."""
        _ = self.model

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate normalized embeddings for multiple texts."""
        if not texts:
            return []
        embeddings = self.model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        import numpy as np

        return np.asarray(embeddings, dtype=np.float64).tolist()

    def embed(self, text: str) -> List[float]:
        """Generate a normalized embedding for one text."""
        return self.embed_batch([text])[0]

    def dispose(self):
        self._model = None
