"""
Configuration for the Nexus Agent knowledge-base assistant.

This file centralizes all tunable parameters for ingestion, inference and
persistence. Environment variables override the defaults where noted.
"""

import os


# ========== UPLOAD PROCESSING ==========

# File upload limits
MAX_FILE_SIZE_MB = float(os.getenv("MAX_FILE_SIZE_MB", "10"))

# Extensions accepted when the browser sends a generic content type
TEXT_FILE_EXTENSIONS = [".txt", ".md"]
PDF_FILE_EXTENSIONS = [".pdf"]
IMAGE_FILE_EXTENSIONS = [".png", ".jpg", ".jpeg", ".gif", ".webp"]

DEFAULT_IMAGE_MIME_TYPE = "image/png"
DEFAULT_PDF_MIME_TYPE = "application/pdf"


# ========== LLM CONFIGURATION ==========

# Model selection
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# Used only when the key store is empty
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")

# Generation parameters
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))

# Status codes that move rotation on to the next key
RATE_LIMIT_STATUS_CODES = {429}
AUTH_FAILURE_STATUS_CODES = {401, 403}


# ========== PERSISTENCE ==========

# "firebase" or "memory"; defaults to firebase when a database URL is set
FIREBASE_DATABASE_URL = os.getenv("FIREBASE_DATABASE_URL")
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")

DATABASE_BACKEND = os.getenv(
    "DATABASE_BACKEND",
    "firebase" if FIREBASE_DATABASE_URL else "memory",
)

MEMORIES_PATH = "memories"
SETTINGS_PATH = "settings"
API_KEYS_PATH = "api_keys"


# ========== AGENT PERSONA ==========

DEFAULT_AGENT_SETTINGS = {
    "role": "Customer Support Specialist",
    "tone": "Professional yet friendly",
    "language": "Indonesian (Formal/Casual mix)",
}


# ========== SERVICE ==========

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Where the Streamlit UI finds the API
API_BASE = os.getenv("NEXUS_API_BASE", "http://127.0.0.1:8000")


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. Randomized key order per call:
   - Spreads load evenly across the pool without shared counters
   - No memory of which key was throttled last; a hot key may be retried
     on the next request

2. Rotate on 401/403 as well as 429:
   - A revoked key does not block the pool
   - Misconfigured pools take longer to fail (every key is tried once)

3. Whole summaries as the knowledge base (no retrieval step):
   - Every memory reaches the prompt, so replies see everything
   - Prompt size grows with the number of memories

4. One Gemini request at a time per process:
   - genai.configure() sets a process-wide key, so each request holds a lock
     from configure to response; a concurrent request can never run under
     another call's key
   - A slow or throttled request delays every other Gemini call; scale out
     with more worker processes rather than threads
"""
