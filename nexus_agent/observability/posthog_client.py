# nexus_agent/observability/posthog_client.py

"""
PostHog Observability Client

Architecture contract:
- Does NOT break existing logging
- Adds product event tracking
- Uses request_id as the distinct id
- Never blocks API execution
"""

import os
import logging
from typing import Optional, Dict, Any

from posthog import Posthog


logger = logging.getLogger(__name__)


class PostHogClient:
    """
    Safe PostHog wrapper.

    Tracking calls never raise; a missing POSTHOG_API_KEY disables the client.
    """

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):

        self._enabled = False
        self._client: Optional[Posthog] = None

        api_key = api_key or os.getenv("POSTHOG_API_KEY")
        host = host or os.getenv("POSTHOG_HOST", "https://app.posthog.com")

        if not api_key:
            logger.warning(
                "PostHog disabled: POSTHOG_API_KEY not set"
            )
            return

        try:

            self._client = Posthog(
                project_api_key=api_key,
                host=host,
                timeout=5,
                flush_interval=1,
            )

            self._enabled = True

            logger.info(
                "PostHog client initialized",
                extra={"host": host}
            )

        except Exception as e:

            logger.error(
                "PostHog initialization failed",
                extra={"error": str(e)}
            )

            self._enabled = False


    # ==========================================================
    # INTERNAL SAFE TRACK
    # ==========================================================

    def _track(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._enabled or not self._client:
            return

        try:

            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog tracking failed",
                extra={
                    "event": event,
                    "error": str(e),
                }
            )


    def identify_user(
        self,
        distinct_id: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._enabled or not self._client:
            return

        try:

            self._client.identify(
                distinct_id=distinct_id,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog identify failed",
                extra={"error": str(e)}
            )


    # ==========================================================
    # KNOWLEDGE BASE
    # ==========================================================

    def track_memory_analyzed(
        self,
        distinct_id: str,
        memory_id: str,
        memory_type: str,
        summary_length: int,
        latency: float,
    ):

        self._track(
            distinct_id,
            "memory_analyzed",
            {
                "memory_id": memory_id,
                "memory_type": memory_type,
                "summary_length": summary_length,
                "latency_seconds": latency,
            },
        )


    # ==========================================================
    # CHAT
    # ==========================================================

    def track_reply_drafted(
        self,
        distinct_id: str,
        message_length: int,
        has_image: bool,
        memories_used: int,
        latency: float,
    ):

        self._track(
            distinct_id,
            "reply_drafted",
            {
                "message_length": message_length,
                "has_image": has_image,
                "memories_used": memories_used,
                "latency_seconds": latency,
            },
        )


    # ==========================================================
    # KEY ROTATION
    # ==========================================================

    def track_keys_exhausted(
        self,
        distinct_id: str,
        pool_size: int,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "api_keys_exhausted",
            {
                "pool_size": pool_size,
                "endpoint": endpoint,
            },
        )


    # ==========================================================
    # ERROR TRACKING
    # ==========================================================

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        error_message: str,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "system_error",
            {
                "error_type": error_type,
                "error_message": error_message,
                "endpoint": endpoint,
            },
        )


# ==============================================================
# GLOBAL SINGLETON
# ==============================================================

posthog_client = PostHogClient()
