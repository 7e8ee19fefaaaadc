"""
Pytest configuration and shared fixtures.
"""

import math
import sys
import textwrap
from typing import List, Sequence

import pytest
from unittest.mock import MagicMock

from code_recall.config import RecallConfig
from code_recall.embedding import Embedder
from code_recall.llm.base import LLMConfig, LLMMessage, MessageRole
from code_recall.store import MemoryStore


STORE_DIMENSIONS = 4


def unit_vector(dimensions: int, index: int) -> List[float]:
    """Basis vector with a single 1.0 at ``index``."""
    vector = [0.0] * dimensions
    vector[index] = 1.0
    return vector


def normalize(values: Sequence[float]) -> List[float]:
    norm = math.sqrt(sum(v * v for v in values))
    return [v / norm for v in values]


class KeywordEmbedder(Embedder):
    """
    Deterministic embedder for tests.

    Each dimension stands for a topic keyword; a text's vector counts
    the topic keywords it contains (case-insensitive substring match).
    Texts with no keyword land on the last dimension.
    """

    TOPICS = ["event", "auth", "invoice", "cache", "deploy", "migration", "queue"]

    def __init__(self):
        self.dimensions = len(self.TOPICS) + 1
        self.calls: List[str] = []
        self.disposed = False

    def vector(self, text: str) -> List[float]:
        lowered = text.lower()
        values = [float(lowered.count(topic)) for topic in self.TOPICS]
        if not any(values):
            values.append(1.0)
        else:
            values.append(0.0)
        return normalize(values)

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return self.vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [await self.embed(text) for text in texts]

    async def dispose(self):
        self.disposed = True


@pytest.fixture
def memory_store():
    """In-memory store of small dimension."""
    store = MemoryStore(dimensions=STORE_DIMENSIONS)
    yield store
    store.close()


@pytest.fixture
def keyword_embedder():
    return KeywordEmbedder()


@pytest.fixture
def recall_config(tmp_path):
    """Configuration matching KeywordEmbedder, rooted in a temp directory."""
    return RecallConfig(
        recall_dir=str(tmp_path / "recall"),
        dimensions=len(KeywordEmbedder.TOPICS) + 1,
    )


FAKE_WORKER = textwrap.dedent('''
    import json
    import sys
    import zlib

    mode = sys.argv[1]
    dimensions = int(sys.argv[2])


    def vector(text):
        values = [0.0] * dimensions
        values[zlib.crc32(text.encode("utf-8")) % dimensions] = 1.0
        return values


    def send(message):
        sys.stdout.write(json.dumps(message) + "\\n")
        sys.stdout.flush()


    if mode == "exit-before-ready":
        sys.exit(3)

    if mode == "noise":
        sys.stdout.write("loading model weights...\\n")
        sys.stdout.write("{not json\\n")
        sys.stdout.write("[1, 2, 3]\\n")
        sys.stdout.flush()

    send({"type": "ready"})

    for line in sys.stdin:
        message = json.loads(line)
        if message["type"] == "exit":
            break
        if mode == "crash":
            sys.exit(7)
        if mode == "error":
            send({"type": "error", "message": "model exploded"})
            continue
        if mode == "short":
            send({"type": "result", "vectors": []})
            continue
        if mode == "noise":
            sys.stdout.write("warning: slow tokenizer\\n")
            sys.stdout.flush()
        send({"type": "result", "vectors": [vector(t) for t in message["texts"]]})
''')


def fake_vector(text: str, dimensions: int) -> List[float]:
    """Vector the fake worker returns for ``text``."""
    import zlib

    return unit_vector(dimensions, zlib.crc32(text.encode("utf-8")) % dimensions)


@pytest.fixture
def fake_worker(tmp_path):
    """
    Build commands that run a scripted embedding worker.

    Usage: ``fake_worker("normal", dimensions=4)``. Modes: normal, noise,
    error, short, crash, exit-before-ready.
    """
    script = tmp_path / "fake_worker.py"
    script.write_text(FAKE_WORKER)

    def command(mode: str = "normal", dimensions: int = STORE_DIMENSIONS) -> List[str]:
        return [sys.executable, str(script), mode, str(dimensions)]

    return command


EXTRACTION_REPLY = '[{"text": "The events table uses soft-deletes.", "rationale": "Rows are never removed."}]'


@pytest.fixture
def mock_llm_config():
    """Create a mock LLM configuration."""
    return LLMConfig(
        provider="openai",
        model="gpt-4o-mini",
        api_key="test-key-123",
        temperature=0.0,
        max_tokens=1000,
        max_retries=2,
        retry_delay=0.01,
    )


@pytest.fixture
def sample_llm_messages():
    return [
        LLMMessage(role=MessageRole.SYSTEM, content="Extract durable facts."),
        LLMMessage(role=MessageRole.USER, content="[user]: events are soft-deleted"),
    ]


@pytest.fixture
def mock_openai_client():
    """Create a mock OpenAI client."""
    mock_client = MagicMock()

    mock_choice = MagicMock()
    mock_choice.message.content = EXTRACTION_REPLY
    mock_choice.finish_reason = "stop"

    mock_response = MagicMock()
    mock_response.model = "gpt-4o-mini"
    mock_response.choices = [mock_choice]
    mock_response.usage.prompt_tokens = 50
    mock_response.usage.completion_tokens = 20
    mock_response.usage.total_tokens = 70

    mock_client.chat.completions.create.return_value = mock_response
    return mock_client


@pytest.fixture
def mock_anthropic_client():
    """Create a mock Anthropic client."""
    mock_client = MagicMock()

    mock_content = MagicMock()
    mock_content.type = "text"
    mock_content.text = EXTRACTION_REPLY

    mock_response = MagicMock()
    mock_response.model = "claude-3-5-haiku-latest"
    mock_response.content = [mock_content]
    mock_response.stop_reason = "end_turn"
    mock_response.usage.input_tokens = 50
    mock_response.usage.output_tokens = 20

    mock_client.messages.create.return_value = mock_response
    return mock_client
