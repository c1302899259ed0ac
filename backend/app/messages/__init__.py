"""Messages module: persistence, the send path, moderation and translation stubs."""

from .repository import MessageRepository
from .service import MessageService

__all__ = ["MessageRepository", "MessageService"]
