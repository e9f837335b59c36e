from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Set

from .errors import ActionInProgressError
from .models import ChatMessage

GREETING = "Hello! How can I help you today?"


class ChatTranscript:
    """In-memory, append-only chat history used for display only."""

    def __init__(self, greeting: Optional[str] = GREETING) -> None:
        """Purpose: Start a transcript, optionally seeded with the model's greeting.
        Inputs/Outputs: Input is the greeting text (None for an empty transcript).
        Side Effects / State: Holds messages in memory; nothing is written to disk.
        Dependencies: ChatMessage model.
        Failure Modes: None.
        If Removed: The chat page cannot be redrawn after a tab switch.
        Testing Notes: A fresh transcript holds exactly the greeting.
        """
        self._messages: List[ChatMessage] = []
        if greeting:
            self._messages.append(ChatMessage(role="model", content=greeting))

    def add(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def messages(self) -> List[ChatMessage]:
        # Copy so callers cannot reorder or drop entries.
        return list(self._messages)


class InFlightGate:
    """Server-side twin of a disabled button: one running call per action key."""

    def __init__(self) -> None:
        self._active: Set[str] = set()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Purpose: Run a block while marking an action as in flight.
        Inputs/Outputs: Input is the action key; yields nothing.
        Side Effects / State: Adds the key on entry and removes it on exit, even on error.
        Dependencies: Single event loop; the check and add happen without an await
            in between, so they cannot interleave.
        Failure Modes: Raises ActionInProgressError if the key is already held.
        If Removed: Duplicate submissions of one action run concurrently and
            continuations can be applied out of order.
        Testing Notes: Nested hold of the same key raises; different keys do not.
        """
        if key in self._active:
            raise ActionInProgressError(key)
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)
