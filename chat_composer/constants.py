import os

LOCAL_COMPOSER_ROOT = ".local_chat"
COMPOSER_CONFIG_FILE = os.path.join(LOCAL_COMPOSER_ROOT, "composer_config.json")
DRAFT_STORE_FILE = os.path.join(LOCAL_COMPOSER_ROOT, "drafts.json")

DRAFT_KEY_PREFIX = "draft"
DRAFT_KEY_SEPARATOR = "|"

MAX_MESSAGE_LENGTH = 8000

LINE_BREAK_MARKER = "<br>"
TRAILING_SPACE_MARKER = "&nbsp;"
MENTION_CSS_CLASS = "input-mention"
MENTION_STYLE_CLASS = "class:input-mention"

LOCK_TIMEOUT_SECONDS = 0.2
LOCK_MAX_ATTEMPTS = 5
LOCK_BACKOFF_BASE_SECONDS = 0.02
LOCK_BACKOFF_MAX_SECONDS = 0.25
