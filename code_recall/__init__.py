"""
code-recall - Semantic memory for source code.

Remembers durable facts about a project (decisions, conventions, gotchas)
and surfaces the relevant ones whenever a source file is read.

Key pieces:
- Structural signatures of source files via tree-sitter
- Vector memory store on SQLite with sqlite-vec
- Sentence embeddings computed in an isolated worker process
- LLM-driven extraction of memories from session transcripts
"""

from .types import (
    Memory,
    MemoryMatch,
    ExtractedMemory,
    SessionMessage,
    MessageRole,
    ExtractionOutcome,
)

from .signature import (
    detect_language,
    extract_signature,
    extract_signature_lines,
    supported_languages,
    dispose_signature_extractor,
)

from .store import (
    MemoryStore,
    MemoryStoreError,
    DimensionMismatchError,
)

from .embedding import (
    Embedder,
    EmbeddingService,
    EmbeddingError,
    EmbeddingWorkerError,
)

from .extraction import (
    ExtractorOptions,
    extract_memories,
    parse_response,
    messages_from_entries,
)

from .config import RecallConfig, load_config, project_db_path
from .engine import RecallEngine, format_memory_block, format_search_results

__version__ = "0.1.0"

__all__ = [
    # Types
    "Memory",
    "MemoryMatch",
    "ExtractedMemory",
    "SessionMessage",
    "MessageRole",
    "ExtractionOutcome",
    # Signatures
    "detect_language",
    "extract_signature",
    "extract_signature_lines",
    "supported_languages",
    "dispose_signature_extractor",
    # Store
    "MemoryStore",
    "MemoryStoreError",
    "DimensionMismatchError",
    # Embeddings
    "Embedder",
    "EmbeddingService",
    "EmbeddingError",
    "EmbeddingWorkerError",
    # Extraction
    "ExtractorOptions",
    "extract_memories",
    "parse_response",
    "messages_from_entries",
    # Engine
    "RecallConfig",
    "load_config",
    "project_db_path",
    "RecallEngine",
    "format_memory_block",
    "format_search_results",
]
