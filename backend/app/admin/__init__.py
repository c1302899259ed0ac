"""Admin module: user bans, the moderation review queue and usage stats."""

from .service import AdminService

__all__ = ["AdminService"]
