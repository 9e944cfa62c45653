# nexus_agent/workflow/response_generator.py
from typing import List, Optional

from nexus_agent import config
from nexus_agent.llm.client import GeminiClient
from nexus_agent.llm.rotation import call_with_rotation
from nexus_agent.memory.loader import decode_base64
from nexus_agent.models import AgentSettings, ApiKeyEntry, MemoryItem
from nexus_agent.prompts.prompt_builder import build_agent_parts
from nexus_agent.prompts.system_prompts import NO_REPLY_FALLBACK


def generate_agent_response(
    client_input: str,
    client_image_base64: Optional[str],
    memories: List[MemoryItem],
    settings: AgentSettings,
    api_keys: List[ApiKeyEntry],
    image_mime_type: Optional[str] = None,
    llm_client: Optional[GeminiClient] = None,
) -> str:
    """
    Draft a WhatsApp reply to a client message, grounded in the knowledge base.

    The reply follows the persona in settings. An attached image is sent
    inline together with the caption.
    """
    llm_client = llm_client or GeminiClient()

    image_data = decode_base64(client_image_base64) if client_image_base64 else None

    parts = build_agent_parts(
        client_input,
        settings,
        memories,
        image_data=image_data,
        image_mime_type=image_mime_type or config.DEFAULT_IMAGE_MIME_TYPE,
    )

    reply = call_with_rotation(
        api_keys,
        lambda api_key: llm_client.generate(api_key, parts),
        fallback_key=config.GEMINI_API_KEY,
    )

    return reply or NO_REPLY_FALLBACK
