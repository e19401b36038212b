from chat_composer.repositories.config_repository import ConfigRepository
from chat_composer.repositories.draft_repository import (
    FileDraftRepository,
    InMemoryDraftRepository,
)
from chat_composer.repositories.interfaces import (
    KeyValueStoreProtocol,
    MessageLookupProtocol,
    UserDirectoryProtocol,
)

__all__ = [
    "ConfigRepository",
    "FileDraftRepository",
    "InMemoryDraftRepository",
    "KeyValueStoreProtocol",
    "MessageLookupProtocol",
    "UserDirectoryProtocol",
]
