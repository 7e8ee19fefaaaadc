"""
Wire protocol between EmbeddingService and the embedding worker.

One JSON object per line over the worker's stdin/stdout:

    worker -> host   {"type": "ready"}
    host -> worker   {"type": "embed", "texts": ["...", ...]}
    worker -> host   {"type": "result", "vectors": [[...], ...]}
                     {"type": "error", "message": "..."}
    host -> worker   {"type": "exit"}

Lines that are not JSON objects with a string "type" are ignored by
both sides.
"""

import json
from typing import Any, Dict, List, Optional, Union


READY = "ready"
EMBED = "embed"
RESULT = "result"
ERROR = "error"
EXIT = "exit"


def encode_message(message: Dict[str, Any]) -> bytes:
    """Serialize a message to a single newline-terminated line."""
    return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")


def decode_message(line: Union[str, bytes]) -> Optional[Dict[str, Any]]:
    """
    Parse one protocol line.

    Returns:
        The message, or None if the line is not a protocol message
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        message = json.loads(line)
    except ValueError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        return None
    return message


def ready_message() -> Dict[str, Any]:
    return {"type": READY}


def embed_message(texts: List[str]) -> Dict[str, Any]:
    return {"type": EMBED, "texts": list(texts)}


def result_message(vectors: List[List[float]]) -> Dict[str, Any]:
    return {"type": RESULT, "vectors": vectors}


def error_message(message: str) -> Dict[str, Any]:
    return {"type": ERROR, "message": message}


def exit_message() -> Dict[str, Any]:
    return {"type": EXIT}
