"""
Constants for notification targeting and FCM delivery.
"""

# FCM rejects multicast messages with more than 500 tokens
MAX_BATCH_SIZE = 500

# Documents requested per page when scanning a collection target
SCAN_PAGE_SIZE = 500

# Reserved data key carrying the notification link
LINK_DATA_KEY = "@link"

# Serialized shape of a wrapped token collection
MODEL_TOKEN_TYPE = "ModelToken"
MODEL_TOKEN_TYPE_KEY = "@type"
MODEL_TOKEN_LIST_KEY = "@list"

# Android click action understood by the mobile client
DEFAULT_CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
ANDROID_PRIORITY = "high"

# Error classification returned to callers on rejected input
INVALID_ARGUMENT = "invalid-argument"
