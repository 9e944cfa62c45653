import logging
import threading
import time

from typing import Any, Dict, List, Union

import google.generativeai as genai

from nexus_agent.config import GEMINI_MODEL, LLM_TEMPERATURE


logger = logging.getLogger(__name__)

Part = Union[str, Dict[str, Any]]

# genai.configure() is process-global; hold this while a key is in use
_configure_lock = threading.Lock()


def inline_part(mime_type: str, data: bytes) -> Dict[str, Any]:
    """Inline binary part (image or PDF) for a multimodal request."""
    return {"mime_type": mime_type, "data": data}


class GeminiClient:
    """
    Client for the Gemini API.

    One instance serves every key: the key is supplied per call so the
    rotation wrapper can swap credentials between attempts.
    """

    def __init__(self, model: str = GEMINI_MODEL, temperature: float = LLM_TEMPERATURE):
        """
        Args:
            model: Gemini model name
            temperature: sampling temperature
        """
        self.model_name = model
        self.temperature = temperature

    def generate(self, api_key: str, parts: List[Part]) -> str:
        """
        Run one generate_content request with the given key.

        Returns:
            Response text, stripped; empty string when the model returned none

        Raises:
            google.api_core.exceptions.GoogleAPICallError on API failures
        """
        start = time.time()

        with _configure_lock:

            genai.configure(api_key=api_key)

            model = genai.GenerativeModel(self.model_name)

            response = model.generate_content(
                parts,
                generation_config={"temperature": self.temperature},
            )

        try:
            text = response.text
        except ValueError:
            # Raised when the candidate was blocked or has no text parts
            text = ""

        logger.info(
            "LLM provider success",
            extra={
                "provider": "gemini",
                "model": self.model_name,
                "parts": len(parts),
                "latency_seconds": round(time.time() - start, 3),
            },
        )

        return (text or "").strip()
