"""
Embedding worker process.

Loads the embedding model and answers embed requests over stdin/stdout
(see ``protocol``). Run with::

    python -m code_recall.embedding.worker [--model NAME]

stdout carries protocol messages only; anything else the model stack
prints is redirected to stderr.
"""

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from . import protocol
from ..observability import setup_logging
from .model import DEFAULT_MODEL, SentenceTransformerEmbedder


logger = logging.getLogger(__name__)


def _write(output: TextIO, message: dict):
    output.write(protocol.encode_message(message).decode("utf-8"))
    output.flush()


def serve(embedder, input_stream: TextIO, output: TextIO) -> int:
    """
    Answer requests until an exit message or end of input.

    Args:
        embedder: Object with ``embed_batch(texts)`` and ``dispose()``
        input_stream: Where requests are read from
        output: Where responses are written to

    Returns:
        Process exit code
    """
    _write(output, protocol.ready_message())

    for line in input_stream:
        message = protocol.decode_message(line)
        if message is None:
            continue

        kind = message["type"]
        if kind == protocol.EXIT:
            break

        if kind != protocol.EMBED:
            logger.debug(f"Ignoring message of type {kind!r}")
            continue

        texts = message.get("texts")
        if not isinstance(texts, list) or not all(isinstance(t, str) for t in texts):
            _write(output, protocol.error_message("'texts' must be a list of strings"))
            continue

        try:
            vectors = embedder.embed_batch(texts)
        except Exception as e:
            logger.exception("Embedding failed")
            _write(output, protocol.error_message(str(e) or e.__class__.__name__))
            continue

        _write(output, protocol.result_message(vectors))

    embedder.dispose()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="code-recall embedding worker")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="sentence-transformers model name")
    parser.add_argument("--device", default=None, help="Torch device (default: auto)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, stream=sys.stderr)

    protocol_out = sys.stdout
    sys.stdout = sys.stderr

    embedder = SentenceTransformerEmbedder(args.model, device=args.device)
    try:
        embedder.load()
    except Exception:
        logger.exception(f"Failed to load embedding model {args.model}")
        return 1

    return serve(embedder, sys.stdin, protocol_out)


if __name__ == "__main__":
    sys.exit(main())
