"""Pydantic models for request/response validation."""

from .schemas import (
    ActiveModel,
    ContainerInfo,
    AvailableModel,
    GenerateOptions,
    GenerateRequest,
    GenerateResponse,
    StreamChunk,
    ActivateRequest,
    ActivationResult,
    ChatRequest,
    ChatResponse,
    SystemInfo,
)

__all__ = [
    "ActiveModel",
    "ContainerInfo",
    "AvailableModel",
    "GenerateOptions",
    "GenerateRequest",
    "GenerateResponse",
    "StreamChunk",
    "ActivateRequest",
    "ActivationResult",
    "ChatRequest",
    "ChatResponse",
    "SystemInfo",
]
