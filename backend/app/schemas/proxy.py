"""
Pydantic v2 schemas for the AI proxy endpoint.

The request carries the API key in the body (desktop clients have no
header plumbing). `options` mirrors the subset of chat-completion
parameters the proxy forwards upstream.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CompletionOptions(BaseModel):
    """Optional upstream parameters. Omitted values use upstream defaults."""

    model_config = ConfigDict(extra="forbid")

    model: str | None = Field(default=None, min_length=1, max_length=100)
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, gt=0, le=1)
    stream: bool | None = None
    stop: list[str] | None = None


class AIRequest(BaseModel):
    """Payload accepted by POST /api/ai."""

    model_config = ConfigDict(extra="forbid")

    api_key: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    options: CompletionOptions | None = None


class AIResponse(BaseModel):
    """Proxy response — the upstream answer, flattened."""

    id: str
    response: str
    model: str
    tokens_used: int
    created_at: datetime
