from typing import Iterable, Iterator, Optional

from react_loop.exceptions import InvalidArgument
from react_loop.schema import Message, Role

DEFAULT_MAX_MESSAGES = 100


class Memory:
    """Ordered, size-bounded log of conversation messages.

    When the bound is exceeded the oldest messages are evicted first. Owned
    by a single agent; not safe for concurrent mutation.
    """

    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        messages: Optional[Iterable[Message]] = None,
    ):
        if max_messages < 1:
            raise InvalidArgument(f"max_messages must be positive, got {max_messages}")
        self.max_messages = max_messages
        self._messages: list[Message] = []
        # Unanswered call ids, kept past eviction so late tool replies still
        # correlate. Only calls that never get a reply stay here until clear().
        self._awaiting_reply: set[str] = set()
        if messages:
            self.extend(messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_empty(self) -> bool:
        return not self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def append(self, message: Message) -> None:
        if message is None:
            raise InvalidArgument("message cannot be None")
        self.extend([message])

    def extend(self, messages: Iterable[Message]) -> None:
        """Append a batch atomically: nothing is added if any message is invalid."""
        if messages is None:
            raise InvalidArgument("messages cannot be None")
        batch = list(messages)
        awaiting = set(self._awaiting_reply)
        emitted = self._emitted_in_memory()
        for message in batch:
            if message is None:
                raise InvalidArgument("message cannot be None")
            if message.role is Role.TOOL:
                call_id = message.tool_call_id
                if call_id not in awaiting and call_id not in emitted:
                    raise InvalidArgument(
                        f"Tool message references unknown tool_call_id '{call_id}'"
                    )
                awaiting.discard(call_id)
            if message.tool_calls:
                ids = {tc.id for tc in message.tool_calls}
                emitted |= ids
                awaiting |= ids
        self._messages.extend(batch)
        self._awaiting_reply = awaiting
        self._trim()

    def recent(self, n: int) -> list[Message]:
        if n <= 0:
            return []
        return self._messages[-n:]

    def by_role(self, role: Role) -> list[Message]:
        return [m for m in self._messages if m.role == role]

    def last_by_role(self, role: Role) -> Optional[Message]:
        for message in reversed(self._messages):
            if message.role == role:
                return message
        return None

    def find(self, text: str, ignore_case: bool = True) -> list[Message]:
        if not text:
            return []
        needle = text.lower() if ignore_case else text
        found = []
        for message in self._messages:
            if not message.content:
                continue
            haystack = message.content.lower() if ignore_case else message.content
            if needle in haystack:
                found.append(message)
        return found

    def clear(self) -> None:
        self._messages.clear()
        self._awaiting_reply.clear()

    def to_dict_list(self) -> list[dict]:
        return [m.to_dict() for m in self._messages]

    def _emitted_in_memory(self) -> set[str]:
        return {tc.id for m in self._messages if m.tool_calls for tc in m.tool_calls}

    def _trim(self) -> None:
        excess = len(self._messages) - self.max_messages
        if excess > 0:
            del self._messages[:excess]
