from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]

from chat_composer.constants import COMPOSER_CONFIG_FILE
from chat_composer.controller import ComposerController
from chat_composer.event_bus import EventBus
from chat_composer.repositories import ConfigRepository, FileDraftRepository
from chat_composer.services import DraftService
from chat_composer.ui import build_input_control


class ComposerContainer(containers.DeclarativeContainer):
    config_path = providers.Object(COMPOSER_CONFIG_FILE)
    message_lookup = providers.Object(None)
    user_directory = providers.Object(None)

    config_repository = providers.Singleton(ConfigRepository, path=config_path)
    config = providers.Singleton(
        lambda repository: repository.load_config(), config_repository
    )

    draft_repository = providers.Singleton(
        lambda config: FileDraftRepository(
            path=config.draft_store_path,
            lock_timeout_seconds=config.lock_timeout_seconds,
            lock_max_attempts=config.lock_max_attempts,
        ),
        config,
    )
    draft_service = providers.Singleton(
        DraftService,
        repository=draft_repository,
        message_lookup=message_lookup,
        config=config,
    )

    event_bus = providers.Singleton(EventBus, maxsize=512)
    controller = providers.Singleton(
        ComposerController,
        draft_service=draft_service,
        config=config,
        user_directory=user_directory,
    )
    input_control = providers.Singleton(build_input_control, controller)


def build_controller(container: ComposerContainer) -> ComposerController:
    controller = container.controller()
    controller.register_event_handlers(container.event_bus())
    return controller
