"""
Cocina Druid Retriever - Application constants.

Centralizes magic numbers for clarity and maintainability.
"""

# Batch size when neither the caller nor config sets one
DEFAULT_MAX_UNSEEN_TO_RETRIEVE = 100

# Dor Services App
DEFAULT_DSA_URL = "http://localhost:3003"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
DSA_OBJECT_PATH = "/v1/objects/{druid}"

# Status code the DSA returns when the cocina was found
HTTP_OK = 200

# Status code recorded when the request never produced an HTTP response
# (connection refused, DNS failure, timeout)
TRANSPORT_ERROR_STATUS = 0

# Druid prefix used by the repository
DRUID_PREFIX = "druid:"

# Archived files
ARCHIVE_FILE_SUFFIX = ".json"
ARCHIVE_FILE_MODE = 0o644

# Bodies longer than this are truncated in failure log lines
MAX_LOGGED_BODY_CHARS = 1000
