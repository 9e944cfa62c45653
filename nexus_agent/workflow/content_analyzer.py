# nexus_agent/workflow/content_analyzer.py
from typing import List, Optional

from nexus_agent import config
from nexus_agent.llm.client import GeminiClient
from nexus_agent.llm.rotation import call_with_rotation
from nexus_agent.memory.loader import UnsupportedFileError, decode_base64
from nexus_agent.models import ApiKeyEntry
from nexus_agent.prompts.prompt_builder import build_analysis_parts
from nexus_agent.prompts.system_prompts import NO_ANALYSIS_FALLBACK


def analyze_content(
    kind: str,
    content: str,
    api_keys: List[ApiKeyEntry],
    mime_type: Optional[str] = None,
    llm_client: Optional[GeminiClient] = None,
) -> str:
    """
    Summarize one upload into a knowledge-base entry.

    content is raw text for kind "text" and base64 for "image" / "pdf".
    """
    if kind not in ("text", "image", "pdf"):
        raise UnsupportedFileError(f"Unknown content kind: {kind}")

    llm_client = llm_client or GeminiClient()

    data = None

    if kind != "text":
        data = decode_base64(content)
        mime_type = mime_type or (
            config.DEFAULT_IMAGE_MIME_TYPE if kind == "image" else config.DEFAULT_PDF_MIME_TYPE
        )

    parts = build_analysis_parts(kind, content, data=data, mime_type=mime_type)

    summary = call_with_rotation(
        api_keys,
        lambda api_key: llm_client.generate(api_key, parts),
        fallback_key=config.GEMINI_API_KEY,
    )

    return summary or NO_ANALYSIS_FALLBACK
