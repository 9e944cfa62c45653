# nexus_agent/prompts/prompt_builder.py

from typing import List, Optional

from nexus_agent.llm.client import Part, inline_part
from nexus_agent.models import AgentSettings, MemoryItem
from nexus_agent.prompts.system_prompts import (
    AGENT_SYSTEM_PROMPT,
    CLIENT_IMAGE_PROMPT,
    CLIENT_MESSAGE_PROMPT,
    FILE_ANALYSIS_PROMPT,
    TEXT_ANALYSIS_PROMPT,
)


def build_knowledge_base(memories: List[MemoryItem]) -> str:
    """One "[Memory: name]" block per memory, separated by blank lines."""

    return "\n\n".join(
        f"[Memory: {memory.name}]\n{memory.summary}"
        for memory in memories
    )


def build_analysis_parts(
    kind: str,
    content: str,
    data: Optional[bytes] = None,
    mime_type: Optional[str] = None,
) -> List[Part]:
    """
    Request parts for summarizing one upload.

    kind:
        "text"          → a single instruction + text part
        "image" / "pdf" → inline data followed by the instruction
    """

    if kind == "text":
        return [TEXT_ANALYSIS_PROMPT + content]

    return [
        inline_part(mime_type, data),
        FILE_ANALYSIS_PROMPT,
    ]


def build_agent_parts(
    client_input: str,
    settings: AgentSettings,
    memories: List[MemoryItem],
    image_data: Optional[bytes] = None,
    image_mime_type: str = "image/png",
) -> List[Part]:

    system_prompt = AGENT_SYSTEM_PROMPT.format(
        role=settings.role,
        tone=settings.tone,
        language=settings.language,
        knowledge_base=build_knowledge_base(memories),
    ).strip()

    parts: List[Part] = [system_prompt]

    if image_data is not None:

        parts.append(inline_part(image_mime_type, image_data))
        parts.append(CLIENT_IMAGE_PROMPT.format(message=client_input))

    else:

        parts.append(CLIENT_MESSAGE_PROMPT.format(message=client_input))

    return parts
