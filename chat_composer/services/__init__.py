from chat_composer.services.draft_service import DraftService

__all__ = ["DraftService"]
