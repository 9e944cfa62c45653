from fastapi import APIRouter, UploadFile, File, HTTPException, Form, Request
from fastapi.concurrency import run_in_threadpool
import uuid
import logging
import time

from typing import List, Optional

from nexus_agent.observability.metrics import metrics_tracker
from nexus_agent.observability.posthog_client import posthog_client

from nexus_agent.models import (
    AddKeyRequest,
    AgentSettings,
    ApiKeyInfo,
    ChatRequest,
    ChatResponse,
    DeleteResponse,
    HealthResponse,
    ListKeysResponse,
    ListMemoriesResponse,
    MemoryInfo,
    MemoryItem,
    SettingsUpdate,
    UploadResponse,
    UploadResult,
)

from nexus_agent.llm.client import GeminiClient
from nexus_agent.llm.rotation import AllKeysExhaustedError, NoApiKeysError
from nexus_agent.memory.database import create_database
from nexus_agent.memory.keys import KeyStore, to_key_info
from nexus_agent.memory.loader import (
    FileTooLargeError,
    LoadedContent,
    UnsupportedFileError,
    load_upload,
)
from nexus_agent.memory.settings import SettingsStore
from nexus_agent.memory.store import MemoryStore, now_ms
from nexus_agent.workflow.content_analyzer import analyze_content
from nexus_agent.workflow.response_generator import generate_agent_response


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# GLOBAL SINGLETONS
# ============================================================

database = create_database()

memory_store = MemoryStore(database)

settings_store = SettingsStore(database)

key_store = KeyStore(database)

llm_client = GeminiClient()


def start_stores():

    for store in (memory_store, settings_store, key_store):
        store.start()


def stop_stores():

    for store in (memory_store, settings_store, key_store):
        store.stop()


# ============================================================
# HELPERS
# ============================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _to_http_error(error: Exception) -> Optional[HTTPException]:

    if isinstance(error, FileTooLargeError):
        return HTTPException(status_code=413, detail=str(error))

    if isinstance(error, UnsupportedFileError):
        return HTTPException(status_code=400, detail=str(error))

    if isinstance(error, NoApiKeysError):
        return HTTPException(status_code=503, detail=str(error))

    if isinstance(error, AllKeysExhaustedError):
        return HTTPException(
            status_code=429,
            detail="All API keys failed or were rate limited. Add more keys in Settings.",
        )

    return None


def _memory_info(memory: MemoryItem) -> MemoryInfo:
    return MemoryInfo(**memory.dict(exclude={"content"}))


def _analyze_and_store(request: Request, name: str, loaded: LoadedContent) -> MemoryItem:

    start_time = time.time()

    summary = analyze_content(
        loaded.kind,
        loaded.content,
        key_store.list_keys(),
        mime_type=loaded.mime_type,
        llm_client=llm_client,
    )

    memory = memory_store.add_memory(
        MemoryItem(
            id=str(uuid.uuid4()),
            type=loaded.kind,
            name=name,
            content=loaded.content,
            summary=summary,
            timestamp=now_ms(),
        )
    )

    latency = time.time() - start_time

    logger.info(
        "Memory analysis complete",
        extra={"memory_id": memory.id, "memory_type": memory.type},
    )

    posthog_client.track_memory_analyzed(
        distinct_id=_request_id(request),
        memory_id=memory.id,
        memory_type=memory.type,
        summary_length=len(summary),
        latency=latency,
    )

    return memory


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check():

    ready = memory_store.loaded and settings_store.loaded and key_store.loaded

    return HealthResponse(
        status="healthy" if ready else "loading",
        ready=ready,
        database_backend=database.backend_name,
        total_memories=len(memory_store.list_memories()),
        total_keys=len(key_store.list_keys()),
    )


# ============================================================
# KNOWLEDGE BASE
# ============================================================

@router.get("/memories", response_model=ListMemoriesResponse)
def list_memories():

    memories = [_memory_info(m) for m in memory_store.list_memories()]

    return ListMemoriesResponse(
        memories=memories,
        total_memories=len(memories),
    )


@router.get("/memories/{memory_id}", response_model=MemoryItem)
def get_memory(memory_id: str):

    memory = memory_store.get_memory(memory_id)

    if memory is None:
        raise HTTPException(status_code=404, detail="Memory not found")

    return memory


@router.post("/memories", response_model=UploadResponse)
async def upload_memories(
    request: Request,
    files: List[UploadFile] = File(None),
    text: str = Form(None),
    name: str = Form(None),
):
    """
    Analyze uploads into memories.

    A single upload maps failures to HTTP errors. In a batch each item
    reports its own outcome and the rest still run.
    """

    items = []

    for upload in files or []:
        items.append((upload.filename or "upload", upload))

    if text and text.strip():
        items.append((name or "Text note", None))

    if not items:

        raise HTTPException(
            status_code=400,
            detail="Provide at least one file or a text field",
        )

    results: List[UploadResult] = []

    for index, (item_name, upload) in enumerate(items, start=1):

        logger.info(
            "Analyzing upload",
            extra={"item": item_name, "position": index, "total": len(items)},
        )

        try:

            if upload is None:
                loaded = LoadedContent("text", text, "text/plain")
            else:
                loaded = load_upload(item_name, await upload.read(), upload.content_type)

            memory = await run_in_threadpool(_analyze_and_store, request, item_name, loaded)

            results.append(
                UploadResult(name=item_name, success=True, memory=_memory_info(memory))
            )

        except Exception as e:

            if isinstance(e, AllKeysExhaustedError):
                posthog_client.track_keys_exhausted(
                    distinct_id=_request_id(request),
                    pool_size=e.attempts,
                    endpoint="/memories",
                )

            posthog_client.track_error(
                distinct_id=_request_id(request),
                error_type=type(e).__name__,
                error_message=str(e),
                endpoint="/memories",
            )

            http_error = _to_http_error(e)

            # No keys at all: every remaining item would fail the same way
            if len(items) == 1 or isinstance(e, NoApiKeysError):
                raise http_error or e

            if http_error is None:
                logger.error(
                    "Upload analysis failed",
                    extra={"item": item_name, "error": str(e)},
                    exc_info=True,
                )

            results.append(
                UploadResult(
                    name=item_name,
                    success=False,
                    error=http_error.detail if http_error else str(e),
                )
            )

    stored = sum(1 for r in results if r.success)

    return UploadResponse(
        results=results,
        stored=stored,
        failed=len(results) - stored,
    )


@router.delete("/memories/{memory_id}", response_model=DeleteResponse)
def delete_memory(memory_id: str):

    if not memory_store.remove_memory(memory_id):

        raise HTTPException(
            status_code=404,
            detail="Memory not found",
        )

    return DeleteResponse(
        id=memory_id,
        message="Deleted",
        success=True,
    )


# ============================================================
# SETTINGS
# ============================================================

@router.get("/settings", response_model=AgentSettings)
def get_settings():

    return settings_store.get_settings()


@router.patch("/settings", response_model=AgentSettings)
def update_settings(payload: SettingsUpdate):

    return settings_store.update_settings(payload.dict(exclude_none=True))


# ============================================================
# API KEYS
# ============================================================

@router.get("/keys", response_model=ListKeysResponse)
def list_keys():

    keys = [to_key_info(entry) for entry in key_store.list_keys()]

    return ListKeysResponse(keys=keys, total_keys=len(keys))


@router.post("/keys", response_model=ApiKeyInfo)
def add_key(payload: AddKeyRequest):

    try:
        entry = key_store.add_key(payload.label, payload.key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return to_key_info(entry)


@router.delete("/keys/{key_id}", response_model=DeleteResponse)
def delete_key(key_id: str):

    if not key_store.remove_key(key_id):

        raise HTTPException(
            status_code=404,
            detail="API key not found",
        )

    return DeleteResponse(
        id=key_id,
        message="Deleted",
        success=True,
    )


# ============================================================
# CHAT
# ============================================================

@router.post("/chat", response_model=ChatResponse)
def chat(payload: ChatRequest, request: Request):

    if not payload.message.strip() and not payload.image_base64:

        raise HTTPException(
            status_code=422,
            detail="Provide a message or an image",
        )

    start_time = time.time()

    memories = memory_store.list_memories()
    api_keys = key_store.list_keys()

    try:

        reply = generate_agent_response(
            payload.message,
            payload.image_base64,
            memories,
            settings_store.get_settings(),
            api_keys,
            image_mime_type=payload.image_mime_type,
            llm_client=llm_client,
        )

    except Exception as e:

        if isinstance(e, AllKeysExhaustedError):
            posthog_client.track_keys_exhausted(
                distinct_id=_request_id(request),
                pool_size=e.attempts,
                endpoint="/chat",
            )

        posthog_client.track_error(
            distinct_id=_request_id(request),
            error_type=type(e).__name__,
            error_message=str(e),
            endpoint="/chat",
        )

        http_error = _to_http_error(e)

        if http_error is not None:
            raise http_error

        raise

    posthog_client.track_reply_drafted(
        distinct_id=_request_id(request),
        message_length=len(payload.message),
        has_image=bool(payload.image_base64),
        memories_used=len(memories),
        latency=time.time() - start_time,
    )

    return ChatResponse(
        reply=reply,
        memories_used=len(memories),
        keys_available=len(api_keys),
    )


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics():

    return metrics_tracker.get_metrics()
