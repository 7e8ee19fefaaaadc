"""
Memory extraction from session transcripts.

Sends a session's user/assistant messages to an LLM with instructions
to pick out durable facts, and parses the reply leniently. The LLM is
reached only through an injected completion function, so this module
does not know about providers.

This is a pure transform: deduplication and storage happen in
RecallEngine.extract_and_store().
"""

import inspect
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Union

from .prompts import DEFAULT_MAX_MEMORIES, format_extraction_system_prompt, format_transcript
from .types import ExtractedMemory, MessageRole, SessionMessage


logger = logging.getLogger(__name__)


# complete(system_prompt, user_message) -> completion text
CompletionFn = Callable[[str, str], Union[str, Awaitable[str]]]

_FENCE_RE = re.compile(r"^```[\w+-]*[ \t]*\n?(.*?)\n?```$", re.DOTALL)


@dataclass
class ExtractorOptions:
    """Options for extract_memories()."""

    max_memories: int = DEFAULT_MAX_MEMORIES
    existing_memories: Optional[List[str]] = None


async def extract_memories(
    messages: Sequence[SessionMessage],
    complete: CompletionFn,
    options: Optional[ExtractorOptions] = None,
) -> List[ExtractedMemory]:
    """
    Extract durable memories from a session's messages.

    Args:
        messages: User/assistant messages, tool traffic already removed
        complete: Completion function, sync or async
        options: Limits and already-known memories

    Returns:
        Candidate memories; empty if there was nothing to extract or the
        reply could not be parsed
    """
    if not messages:
        return []

    options = options or ExtractorOptions()
    system_prompt = format_extraction_system_prompt(
        max_memories=options.max_memories,
        existing_memories=options.existing_memories,
    )
    user_message = format_transcript([
        f"[{_role_name(message.role)}]: {message.text}" for message in messages
    ])

    reply = complete(system_prompt, user_message)
    if inspect.isawaitable(reply):
        reply = await reply

    memories = parse_response(reply or "")
    logger.debug(f"Extracted {len(memories)} candidate memories from {len(messages)} messages")
    return memories


def parse_response(raw: str) -> List[ExtractedMemory]:
    """
    Parse the model's reply into extracted memories.

    Accepts a bare JSON array, one wrapped in a markdown code fence, or
    one buried in surrounding prose. Elements without a non-empty string
    ``text`` and a string ``rationale`` are dropped. Never raises.
    """
    text = _strip_code_fence(raw.strip())

    try:
        data = json.loads(text)
    except ValueError:
        data = _find_json_array(text)

    if not isinstance(data, list):
        return []

    memories = []
    for item in data:
        if not isinstance(item, dict):
            continue
        fact = item.get("text")
        rationale = item.get("rationale")
        if not isinstance(fact, str) or not isinstance(rationale, str):
            continue
        fact = fact.strip()
        if not fact:
            continue
        memories.append(ExtractedMemory(text=fact, rationale=rationale.strip()))

    return memories


def messages_from_entries(entries: Iterable[Any]) -> List[SessionMessage]:
    """
    Collect user/assistant text from host transcript entries.

    Entries look like ``{"type": "message", "message": {"role": ..., "content": ...}}``
    where content is a string or a list of ``{"type": "text", "text": ...}`` parts.
    Bare ``{"role": ..., "content": ...}`` dicts are accepted too. Tool calls,
    tool results and other roles are skipped.
    """
    messages = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if "message" in entry:
            if entry.get("type", "message") != "message":
                continue
            message = entry["message"]
        else:
            message = entry
        if not isinstance(message, dict):
            continue

        role = message.get("role")
        if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
            continue

        text = _content_text(message.get("content"))
        if text:
            messages.append(SessionMessage(role=MessageRole(role), text=text))

    return messages


def _role_name(role: Union[MessageRole, str]) -> str:
    return role.value if isinstance(role, MessageRole) else str(role)


def _content_text(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        texts = [
            part["text"] for part in content
            if isinstance(part, dict) and part.get("type") == "text" and part.get("text")
        ]
        return "\n".join(texts) if texts else None
    return None


def _strip_code_fence(text: str) -> str:
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def _find_json_array(text: str) -> Optional[Any]:
    """Parse the first balanced top-level ``[...]`` in text that is valid JSON."""
    start = text.find("[")
    while start != -1:
        end = _balanced_end(text, start)
        if end == -1:
            start = text.find("[", start + 1)
            continue
        try:
            return json.loads(text[start:end + 1])
        except ValueError:
            start = text.find("[", start + 1)
    return None


def _balanced_end(text: str, start: int) -> int:
    """Index of the bracket closing the one at ``start``, or -1."""
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return -1
