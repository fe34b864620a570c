"""Protocol constants and fixed limits shared across the pipeline."""

LIBRARY_NAME = "beacon-python"
LIBRARY_VERSION = "1.0.0"

# Upload protocol version sent as the ``v`` form field
API_VERSION = "2"

DEFAULT_INSTANCE = "$default_instance"

# Reserved event types
IDENTIFY_EVENT = "$identify"
GROUP_IDENTIFY_EVENT = "$groupidentify"

# Identify operations
OP_SET = "$set"
OP_SET_ONCE = "$setOnce"
OP_ADD = "$add"
OP_APPEND = "$append"
OP_PREPEND = "$prepend"
OP_UNSET = "$unset"
OP_CLEAR_ALL = "$clearAll"

# Property limits
MAX_PROPERTY_KEYS = 1000
MAX_STRING_LENGTH = 4096
MAX_PROPERTY_DEPTH = 16

# Sentinel callback outcome for entries that never reach the network
NO_REQUEST_STATUS = 0
NO_REQUEST_MESSAGE = "No request sent"

# Upload response codes the scheduler interprets
STATUS_SUCCESS = 200
STATUS_PAYLOAD_TOO_LARGE = 413

# Tracking options resolved server-side (sent in api_properties when disabled)
SERVER_SIDE_TRACKING_OPTIONS = ("city", "country", "dma", "ip_address", "region")
