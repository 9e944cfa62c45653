from pydantic import BaseModel, Field, validator
from typing import List, Literal, Optional

MemoryType = Literal["text", "image", "pdf"]


class MemoryItem(BaseModel):
    """A knowledge-base entry created from one analyzed upload."""
    id: str
    type: MemoryType
    name: str
    content: str  # raw text, or base64 for images and PDFs
    summary: str
    timestamp: int  # epoch milliseconds


class MemoryInfo(BaseModel):
    """Memory listing entry (content omitted)."""
    id: str
    type: MemoryType
    name: str
    summary: str
    timestamp: int


class ListMemoriesResponse(BaseModel):
    memories: List[MemoryInfo]
    total_memories: int


class UploadResult(BaseModel):
    """Outcome of analyzing a single uploaded file."""
    name: str
    success: bool
    memory: Optional[MemoryInfo] = None
    error: Optional[str] = None


class UploadResponse(BaseModel):
    results: List[UploadResult]
    stored: int
    failed: int


class AgentSettings(BaseModel):
    """Persona configuration used when drafting replies."""
    role: str
    tone: str
    language: str


class SettingsUpdate(BaseModel):
    """Partial persona update; omitted fields keep their stored value."""
    role: Optional[str] = None
    tone: Optional[str] = None
    language: Optional[str] = None


class ApiKeyEntry(BaseModel):
    id: str
    label: str
    key: str
    created_at: int


class ApiKeyInfo(BaseModel):
    """Key listing entry; the secret itself is never returned."""
    id: str
    label: str
    preview: str
    created_at: int


class AddKeyRequest(BaseModel):
    label: str = Field(..., min_length=1, max_length=100)
    key: str = Field(..., min_length=1, max_length=500)

    @validator("label", "key")
    def validate_not_blank(cls, v):
        """Reject whitespace-only values."""
        if not v.strip():
            raise ValueError("Value cannot be empty or only whitespace")
        return v.strip()


class ListKeysResponse(BaseModel):
    keys: List[ApiKeyInfo]
    total_keys: int


class ChatAttachment(BaseModel):
    type: Literal["image", "text"]
    content: str


class ChatMessage(BaseModel):
    """Session-local chat bubble. Never persisted."""
    id: str
    sender: Literal["user", "ai"]
    text: str
    attachment: Optional[ChatAttachment] = None
    timestamp: int


class ChatRequest(BaseModel):
    """Client message to draft a reply for."""
    message: str = Field("", max_length=5000)
    image_base64: Optional[str] = None
    image_mime_type: Optional[str] = None


class ChatResponse(BaseModel):
    reply: str
    memories_used: int
    keys_available: int


class DeleteResponse(BaseModel):
    id: str
    message: str
    success: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    ready: bool
    database_backend: str
    total_memories: int
    total_keys: int
