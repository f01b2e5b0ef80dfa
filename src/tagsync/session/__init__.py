from .context import SESSION_TOPIC, SessionContext

__all__ = ["SESSION_TOPIC", "SessionContext"]
