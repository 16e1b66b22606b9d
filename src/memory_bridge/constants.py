"""Centralized constants for Memory Bridge."""

PLUGIN_ID = "memory-bridge"

# Capture buffering
SILENCE_WINDOW_SECONDS = 300
MAX_BUFFER_SIZE = 20
OVERLAP_SIZE = 4
MIN_FLUSH_SIZE = 4  # two exchanges
MIN_CAPTURE_CONTENT_LENGTH = 5
DEFAULT_CHANNEL_KEY = "default"
FLUSH_KEY_SUFFIX = "__flush"

# Recall
MIN_RECALL_LENGTH = 30
CASUAL_LENGTH_THRESHOLD = 40
MAX_RECALL_QUERY_CHARS = 500
RECALL_MAX_TOKENS = 2000
RECALL_HOOK_PRIORITY = 10

# Tools
DEFAULT_SEARCH_LIMIT = 5
MAX_SEARCH_LIMIT = 20
DEFAULT_CONTEXT_MAX_TOKENS = 4000
SUMMARY_ITEMS_PER_SOURCE = 5

# HTTP
DEFAULT_REQUEST_TIMEOUT = 30.0
