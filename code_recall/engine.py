"""
Recall Engine - Wires signatures, embeddings and the memory store together.

Two flows run through the engine:

- Recall: when a source file is read, its structural signature is
  embedded and the closest memories are appended to the content.
- Extraction: at the end of a session, durable facts are pulled out of
  the transcript, embedded, deduplicated against the store and saved.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import RecallConfig, load_config
from .embedding import Embedder, EmbeddingService
from .extraction import CompletionFn, ExtractorOptions, extract_memories
from .signature import detect_language, dispose_signature_extractor, extract_signature
from .store import MemoryStore
from .types import ExtractionOutcome, Memory, MemoryMatch, SessionMessage


logger = logging.getLogger(__name__)


MANUAL_SESSION_ID = "manual"


def format_memory_block(matches: Sequence[MemoryMatch]) -> str:
    """Render matches as the block appended to file content."""
    if not matches:
        return ""
    lines = "\n".join(f"- {match.memory.text}" for match in matches)
    return f"\n\n<memory>\n{lines}\n</memory>"


def format_search_results(matches: Sequence[MemoryMatch]) -> str:
    """Render matches for an explicit search, one per line."""
    return "\n".join(
        f"- {match.memory.text} (similarity: {match.similarity:.2f}, from: {match.memory.session_id})"
        for match in matches
    )


class RecallEngine:
    """
    Per-project recall engine.

    The store and the embedding service are created on first use. If
    that fails the error is remembered: recall on file reads quietly
    degrades to nothing, while explicit operations re-raise it.

    Usage:
        engine = RecallEngine(project_path="/path/to/repo")
        try:
            content = await engine.augment_read("src/events.ts", content)
        finally:
            await engine.close()
    """

    def __init__(
        self,
        project_path: Optional[str] = None,
        config: Optional[RecallConfig] = None,
        db_path: Optional[Union[str, Path]] = None,
        embedder: Optional[Embedder] = None,
        store: Optional[MemoryStore] = None,
    ):
        """
        Args:
            project_path: Project root; its absolute path identifies the database
            config: Configuration (loaded from the usual sources if omitted)
            db_path: Explicit database path, overriding the per-project default
            embedder: Embedder to use instead of a worker-backed EmbeddingService
            store: Already-open store to use instead of opening db_path
        """
        self.project_path = os.path.abspath(project_path or os.getcwd())
        self.config = config or load_config(project_path=self.project_path)
        self.db_path = str(db_path) if db_path else str(self.config.db_path_for(self.project_path))

        self._embedder = embedder
        self._store = store
        self._init_error: Optional[BaseException] = None
        self._init_lock: Optional[asyncio.Lock] = None
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._embedder is not None and self._store is not None

    @property
    def init_error(self) -> Optional[BaseException]:
        return self._init_error

    @property
    def store(self) -> Optional[MemoryStore]:
        return self._store

    async def initialize(self) -> bool:
        """
        Create the store and embedder if needed.

        Returns:
            True if the engine is usable
        """
        if self._closed:
            return False
        if self._init_error is not None:
            return False
        if self.initialized:
            return True

        if self._init_lock is None:
            self._init_lock = asyncio.Lock()

        async with self._init_lock:
            if self.initialized:
                return True
            if self._init_error is not None:
                return False
            try:
                if self._store is None:
                    self._store = MemoryStore(self.db_path, dimensions=self.config.dimensions)
                if self._embedder is None:
                    self._embedder = EmbeddingService(
                        model_name=self.config.embedding_model,
                        dimensions=self.config.dimensions,
                    )
            except Exception as e:
                self._init_error = e
                logger.error(f"Failed to initialize memory system: {e}")
                return False

        logger.debug(f"Memory system ready at {self.db_path}")
        return True

    async def _require(self):
        if not await self.initialize():
            if self._init_error is not None:
                raise self._init_error
            raise RuntimeError("Recall engine is closed")

    # -------------------------------------------------------------------------
    # Recall
    # -------------------------------------------------------------------------

    async def recall_for_file(self, file_path: str, content: str) -> List[MemoryMatch]:
        """Memories related to a source file's structure."""
        if not content or detect_language(file_path) is None:
            return []
        if not await self.initialize():
            return []
        if self._store.count() == 0:
            return []

        signature = extract_signature(file_path, content)
        if not signature:
            return []

        vector = await self._embedder.embed(signature)
        return self._store.search(
            vector,
            threshold=self.config.similarity_threshold,
            limit=self.config.max_memories_per_read,
        )

    async def augment_read(self, file_path: str, content: str) -> str:
        """
        Append related memories to file content.

        Reads are never broken by recall: on any failure the content is
        returned unchanged.
        """
        try:
            matches = await self.recall_for_file(file_path, content)
        except Exception as e:
            logger.warning(f"Error during recall for {file_path}: {e}")
            return content

        if not matches:
            return content
        logger.debug(f"Recalled {len(matches)} memories for {file_path}")
        return content + format_memory_block(matches)

    async def search(self, query: str, limit: Optional[int] = None) -> List[MemoryMatch]:
        """Search memories by free text at the recall threshold."""
        await self._require()
        if not query.strip() or self._store.count() == 0:
            return []

        vector = await self._embedder.embed(query)
        return self._store.search(
            vector,
            threshold=self.config.similarity_threshold,
            limit=self.config.search_limit if limit is None else limit,
        )

    # -------------------------------------------------------------------------
    # Management
    # -------------------------------------------------------------------------

    async def remember(self, text: str, session_id: str = MANUAL_SESSION_ID) -> int:
        """Embed and store a fact. Returns the new memory id."""
        text = text.strip()
        if not text:
            raise ValueError("Memory text must not be empty")

        await self._require()
        vector = await self._embedder.embed(text)
        memory_id = self._store.add(text, vector, session_id)
        logger.info(f"Remembered memory {memory_id}")
        return memory_id

    async def forget(self, memory_id: int):
        await self._require()
        self._store.delete(memory_id)

    async def list_memories(self) -> List[Memory]:
        await self._require()
        return self._store.list()

    async def count(self) -> int:
        await self._require()
        return self._store.count()

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    async def extract_and_store(
        self,
        messages: Sequence[SessionMessage],
        complete: CompletionFn,
        session_id: Optional[str] = None,
    ) -> ExtractionOutcome:
        """
        Extract memories from a session and store the new ones.

        A candidate is skipped when an existing memory is at least
        ``dedup_threshold`` similar to it, including memories stored
        earlier in the same run.
        """
        outcome = ExtractionOutcome()
        if not messages:
            return outcome

        await self._require()
        session_id = session_id or f"session-{int(time.time() * 1000)}"

        existing = [memory.text for memory in self._store.list()]
        extracted = await extract_memories(
            messages,
            complete,
            ExtractorOptions(
                max_memories=self.config.max_memories_per_session,
                existing_memories=existing or None,
            ),
        )
        outcome.extracted = len(extracted)
        if not extracted:
            logger.info("No memories extracted")
            return outcome

        for memory in extracted:
            vector = await self._embedder.embed(memory.text)

            if self._store.count() > 0:
                duplicates = self._store.search(vector, threshold=self.config.dedup_threshold, limit=1)
                if duplicates:
                    outcome.skipped += 1
                    continue

            outcome.stored_ids.append(self._store.add(memory.text, vector, session_id))
            outcome.stored += 1

        logger.info(
            f"Extracted {outcome.extracted} memories: stored {outcome.stored}, "
            f"skipped {outcome.skipped} duplicates",
            extra={"attributes": {"session_id": session_id}},
        )
        return outcome

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self):
        """Release the embedding worker, the store and parser caches."""
        if self._closed:
            return
        self._closed = True

        try:
            if self._embedder is not None:
                await self._embedder.dispose()
        finally:
            self._embedder = None
            if self._store is not None:
                self._store.close()
                self._store = None
            dispose_signature_extractor()

    async def __aenter__(self) -> "RecallEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
