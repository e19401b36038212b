from __future__ import annotations

from typing import Any, Protocol

from chat_composer.models import Message


class KeyValueStoreProtocol(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> bool: ...

    def delete(self, key: str) -> bool: ...


class MessageLookupProtocol(Protocol):
    async def get_message_by_id(
        self, conversation_id: str, message_id: str
    ) -> Message | None: ...


class UserDirectoryProtocol(Protocol):
    def get_display_name(self, user_id: str) -> str | None: ...

    def list_users(self) -> list[dict[str, str]]: ...
