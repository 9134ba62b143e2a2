"""
Shared constants.
"""

# Value normalization
DEFAULT_MAX_DEPTH = 20
CIRCULAR_REFERENCE_MARKER = "[circular reference]"
MAX_DEPTH_MARKER = "[maximum depth reached]"

# Firestore limits
MAX_BATCH_OPERATIONS = 500

# TTL
DEFAULT_TTL_FIELD = "expires_at"
