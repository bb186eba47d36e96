"""
gamerhub.realtime.protocol — WebSocket frame envelopes
========================================================

Client → server frames name a hub method and carry its keyword arguments::

    {"target": "send_message", "arguments": {"conversation_id": 4, "content": "gg"}}

Server → client frames carry an event name and its payload::

    {"type": "receive_message", "data": {...}}
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HubInvocation(BaseModel):
    """Client → Server."""

    target: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class HubEvent(BaseModel):
    """Server → Client."""

    type: str
    data: Any = None

    def frame(self) -> dict:
        return self.model_dump(mode="json")
