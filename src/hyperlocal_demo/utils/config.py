"""Configuration constants for the hyperlocal demo client."""

from pathlib import Path

# =============================================================================
# Capture
# =============================================================================

# Number of frames the capture service accumulates before estimation starts
FRAME_THRESHOLD: int = 15

# Whether the capture service keeps preview URLs for captured frames
SHOW_PREVIEW: bool = True

# =============================================================================
# Payload Validation
# =============================================================================

# Shortest image reference accepted
MIN_IMAGE_REFERENCE_LENGTH: int = 20

# A data: URI must carry more than this many characters after the comma
MIN_DATA_PAYLOAD_LENGTH: int = 10

# MIME type used when a data: URI or HTTP response does not declare one
DEFAULT_IMAGE_MIME_TYPE: str = "image/jpeg"

# =============================================================================
# Estimation Parameters
# =============================================================================

# Placeholder location id sent when mock mode is enabled
MOCK_LOCATION_ID: str = "mock-location-123"

# Approximate location hint sent when mock mode is enabled (Sydney)
MOCK_LATITUDE: float = -33.8688
MOCK_LONGITUDE: float = 151.2093

# Value used for a malformed coordinate in camera mode
FALLBACK_COORDINATE: float = 0.0

# =============================================================================
# Persistence
# =============================================================================

CONFIG_STORAGE_KEY: str = "hyperlocal-demo:config"
PAYLOAD_STORAGE_KEY: str = "hyperlocal-demo:payload"

DEFAULT_STORAGE_PATH: Path = Path.home() / ".hyperlocal-demo" / "storage.json"

# =============================================================================
# Network
# =============================================================================

# Seconds allowed for fetching a remote image reference
HTTP_TIMEOUT_SECONDS: float = 30.0

# Log format version for JSONL records
LOG_VERSION: str = "v1"
