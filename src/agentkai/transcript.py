import logging

from agentkai.message import Message, MessageRole

logger = logging.getLogger(__name__)


class Transcript:
    """Bounded, ordered message history fed back to the model each round.

    When appending pushes the history past ``max_messages`` the oldest
    messages are dropped. A ``tool`` message is meaningless without the
    assistant message that requested it, so trimming never leaves one
    at the front.

    Args:
        max_messages: Maximum number of retained messages.
        messages: Initial history, trimmed like any append.
    """

    def __init__(self, max_messages: int = 50, messages: list[Message] | None = None):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self._messages: list[Message] = []
        if messages:
            self.extend(messages)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def append(self, message: Message) -> None:
        self.extend([message])

    def extend(self, messages: list[Message]) -> None:
        self._messages.extend(messages)
        self._trim()

    def set_max_messages(self, max_messages: int) -> None:
        if max_messages < 1:
            logger.warning("max_messages must be at least 1, keeping current limit")
            return
        self.max_messages = max_messages
        self._trim()

    def _trim(self) -> None:
        if len(self._messages) <= self.max_messages:
            return
        self._messages = self._messages[-self.max_messages:]
        logger.debug(f"Transcript trimmed to {self.max_messages} messages")
        while self._messages and self._messages[0].role == MessageRole.TOOL:
            self._messages.pop(0)
            logger.debug("Dropped leading tool message without its tool-call request")

    def recent(self, count: int) -> list[Message]:
        if count <= 0:
            return []
        return self._messages[-count:]

    def by_role(self, role: MessageRole) -> list[Message]:
        return [m for m in self._messages if m.role == role]

    def clear(self) -> None:
        self._messages.clear()

    def to_openai(self) -> list[dict]:
        return [m.to_openai() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)

    def __getitem__(self, index):
        return self._messages[index]
