from pydantic import BaseModel, Field
from typing import TypeAlias, Literal

MemoryType: TypeAlias = Literal["summary"]
MemorySource: TypeAlias = Literal["markdown"]

MEMORY_ID_PREFIX = "md:"


class MemorySearchResult(BaseModel):
    """A ranked note chunk returned by search or recent-snippet lookups"""

    id: str = Field(description="Prefixed chunk identifier")
    snippet: str = Field(description="Whitespace-collapsed, truncated chunk text")
    type: MemoryType = Field(default="summary")
    relevance_score: float = Field(ge=0.0, le=1.0, description="Relevance in [0, 1]")
    created_at: int = Field(description="Source file mtime in epoch milliseconds")
    source: MemorySource = Field(default="markdown")
    path: str = Field(description="Workspace-relative path of the note")
    start_line: int = Field(description="1-based first line of the chunk")
    end_line: int = Field(description="Inclusive last line of the chunk")


class MemoryTimelineEntry(BaseModel):
    """A neighbouring chunk of the same note, for context browsing"""

    id: str = Field(description="Prefixed chunk identifier")
    content: str = Field(description="Full chunk text")
    type: MemoryType = Field(default="summary")
    created_at: int = Field(description="Source file mtime in epoch milliseconds")


class MemoryDetail(BaseModel):
    """Full content record for a resolved chunk identifier"""

    id: str = Field(description="Prefixed chunk identifier")
    workspace_id: str
    type: MemoryType = Field(default="summary")
    content: str
    summary: str = Field(description="Location label, e.g. notes/plan.md#L1-12")
    tokens: int = Field(ge=0, description="Estimated token count of the content")
    is_compressed: bool = True
    is_private: bool = False
    created_at: int
    updated_at: int


def to_memory_id(chunk_id: str) -> str:
    return f"{MEMORY_ID_PREFIX}{chunk_id}"


def normalize_memory_id(memory_id: str) -> str | None:
    """Strip the ``md:`` prefix, or return None if the id does not carry it."""
    trimmed = memory_id.strip()
    if not trimmed.startswith(MEMORY_ID_PREFIX):
        return None
    chunk_id = trimmed[len(MEMORY_ID_PREFIX) :].strip()
    return chunk_id or None
