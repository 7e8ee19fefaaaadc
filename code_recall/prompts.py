"""
Prompt templates for memory extraction.
"""

from typing import List, Optional, Sequence


DEFAULT_MAX_MEMORIES = 20


# =============================================================================
# Memory Extraction Prompts
# =============================================================================

MEMORY_EXTRACTION_SYSTEM = """You are reviewing a conversation between a developer and a coding assistant.
Your goal is to extract durable facts that a developer on this project would make sure to remember.

Extract at most {max_memories} memories. Each memory must be a single standalone statement
that makes sense without the conversation, e.g. "The events table uses soft-deletes; rows are never hard-deleted."

Focus on:
- Architectural decisions (how the system is structured and why)
- Corrections (something the assistant got wrong and how it should be done)
- Conventions (naming, formatting, tooling, workflow rules)
- Gotchas (non-obvious behavior, traps, required manual steps)
- Domain rules (business logic, limits, policies)
- Important relationships (which components depend on or own which)

Exclude:
- Implementation details that are obvious from reading the code
- Transient debugging context (stack traces, one-off errors, temporary state)
- Generic programming knowledge that is not specific to this project
{existing_section}
Respond with a JSON array only, no other text. Each element must be an object with:
- "text": the fact to remember
- "rationale": why it is worth remembering

If nothing is worth remembering, respond with an empty JSON array: []"""

EXISTING_MEMORIES_SECTION = """
These facts are already remembered. Do NOT extract duplicates of them:
{existing_memories}
"""


def format_extraction_system_prompt(
    max_memories: int = DEFAULT_MAX_MEMORIES,
    existing_memories: Optional[Sequence[str]] = None,
) -> str:
    """Format the memory extraction system prompt."""
    existing_section = ""
    if existing_memories:
        listed = "\n".join(f"- {memory}" for memory in existing_memories)
        existing_section = EXISTING_MEMORIES_SECTION.format(existing_memories=listed)

    return MEMORY_EXTRACTION_SYSTEM.format(
        max_memories=max_memories,
        existing_section=existing_section,
    )


def format_transcript(lines: List[str]) -> str:
    """Join formatted transcript lines into the extraction user message."""
    return "\n\n".join(lines)
