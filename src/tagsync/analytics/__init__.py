from .tracking import EVENT_NAME, KeywordEditEvent, KeywordEditTracker, log_sink

__all__ = ["EVENT_NAME", "KeywordEditEvent", "KeywordEditTracker", "log_sink"]
