"""
Global constants for tagsync.
"""

VERSION = "0.1.0"
USER_AGENT = f"tagsync/{VERSION}"

# Remote keyword service
DEFAULT_API_URL = "https://gitcoin.co"
DEFAULT_KEYWORDS_PATH = "api/v0.1/profile/{user}/keywords"
DEFAULT_TIMEOUT = 10.0

# Message bus topics
KEYWORDS_CHANGED = "keywords.changed"
KEYWORDS_ERROR = "keywords.error"
