"""Live chat session bound to a content generator."""

from typing import AsyncIterator, Optional, Sequence

import structlog

from switchboard.inference.generators import ContentGenerator, GenerateResponse
from switchboard.models.types import Content

logger = structlog.get_logger(__name__)


class ChatSession:
    """
    Ordered conversation history plus the generator that continues it.

    A session built with an existing history is how a conversation is
    carried over to a new model after a switch.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        history: Optional[Sequence[Content]] = None,
        system_instruction: Optional[str] = None,
    ):
        self.generator = generator
        self.system_instruction = system_instruction
        self._history: list[Content] = [turn.model_copy(deep=True) for turn in history or ()]

    def get_history(self) -> list[Content]:
        """Return a copy of the conversation history."""
        return [turn.model_copy(deep=True) for turn in self._history]

    def add_history(self, content: Content) -> None:
        self._history.append(content)

    def clear_history(self) -> None:
        self._history.clear()

    def _discard_unanswered(self, user_turn: Content) -> None:
        if self._history and self._history[-1] is user_turn:
            self._history.pop()

    async def send_message(self, text: str) -> GenerateResponse:
        """Send a user message and record the model's reply."""
        user_turn = Content.from_text("user", text)
        self._history.append(user_turn)
        answered = False

        try:
            response = await self.generator.generate_content(
                self._history,
                system=self.system_instruction,
            )
            self._history.append(Content.from_text("model", response.text))
            answered = True
        finally:
            # Unanswered turns leave no trace
            if not answered:
                self._discard_unanswered(user_turn)

        return response

    async def send_message_stream(self, text: str) -> AsyncIterator[str]:
        """
        Send a user message and yield the reply as it streams in.

        The turn is recorded only when the stream runs to completion; closing
        the iterator early removes the user message again.
        """
        user_turn = Content.from_text("user", text)
        self._history.append(user_turn)
        chunks: list[str] = []
        answered = False

        try:
            async for response in self.generator.generate_content_stream(
                self._history,
                system=self.system_instruction,
            ):
                chunks.append(response.text)
                yield response.text
            self._history.append(Content.from_text("model", "".join(chunks)))
            answered = True
        finally:
            if not answered:
                self._discard_unanswered(user_turn)
