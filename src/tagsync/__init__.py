"""
tagsync keeps a user's skill keywords consistent between an in-memory set,
an encrypted local store and a remote keyword service.
"""

from tagsync.constants import VERSION

__version__ = VERSION
