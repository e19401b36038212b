from __future__ import annotations

import copy
import json
import logging
import os
import random
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import portalocker

from chat_composer.constants import (
    DRAFT_STORE_FILE,
    LOCK_BACKOFF_BASE_SECONDS,
    LOCK_BACKOFF_MAX_SECONDS,
    LOCK_MAX_ATTEMPTS,
    LOCK_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class InMemoryDraftRepository:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._values.get(key))

    def set(self, key: str, value: Any) -> bool:
        self._values[key] = copy.deepcopy(value)
        return True

    def delete(self, key: str) -> bool:
        return self._values.pop(key, None) is not None


class FileDraftRepository:
    """Drafts kept as one JSON object on disk, rewritten under a file lock."""

    def __init__(
        self,
        path: str | Path = DRAFT_STORE_FILE,
        lock_timeout_seconds: float = LOCK_TIMEOUT_SECONDS,
        lock_max_attempts: int = LOCK_MAX_ATTEMPTS,
    ):
        self.path = Path(path)
        self.lock_timeout_seconds = lock_timeout_seconds
        self.lock_max_attempts = max(1, lock_max_attempts)

    def _parse(self, raw: str) -> dict[str, Any]:
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt draft store %s ignored.", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Draft store %s is not an object; ignored.", self.path)
            return {}
        return data

    def read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return self._parse(f.read())
        except OSError as exc:
            logger.warning("Failed reading draft store %s: %s", self.path, exc)
            return {}

    def get(self, key: str) -> Any:
        return self.read_all().get(key)

    def set(self, key: str, value: Any) -> bool:
        def apply(data: dict[str, Any]) -> None:
            data[key] = value

        return self._update(apply)

    def delete(self, key: str) -> bool:
        def apply(data: dict[str, Any]) -> None:
            data.pop(key, None)

        return self._update(apply)

    def _update(self, apply: Callable[[dict[str, Any]], None]) -> bool:
        try:
            os.makedirs(self.path.parent, exist_ok=True)
        except OSError as exc:
            logger.warning("Failed creating draft store directory: %s", exc)
            return False

        for attempt in range(self.lock_max_attempts):
            try:
                with portalocker.Lock(
                    str(self.path),
                    mode="a+",
                    timeout=self.lock_timeout_seconds,
                    fail_when_locked=True,
                    encoding="utf-8",
                ) as f:
                    f.seek(0)
                    data = self._parse(f.read())
                    apply(data)
                    f.seek(0)
                    f.truncate()
                    f.write(json.dumps(data, ensure_ascii=True))
                    f.flush()
                    os.fsync(f.fileno())
                return True
            except portalocker.exceptions.LockException:
                pass
            except OSError as exc:
                logger.warning("Draft store write failed: %s", exc)

            if attempt == self.lock_max_attempts - 1:
                break
            delay = min(
                LOCK_BACKOFF_MAX_SECONDS,
                LOCK_BACKOFF_BASE_SECONDS * (2 ** min(attempt, 5)),
            )
            time.sleep(delay + random.uniform(0, 0.01))

        logger.warning(
            "Gave up writing draft store %s after %s attempts.",
            self.path,
            self.lock_max_attempts,
        )
        return False
