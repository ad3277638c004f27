"""Domain-specific configuration models."""

from peer_chat.core.settings.app_config import AppConfig
from peer_chat.core.settings.auth_config import AuthConfig
from peer_chat.core.settings.chat_config import ChatConfig
from peer_chat.core.settings.database_config import DatabaseConfig
from peer_chat.core.settings.realtime_config import RealtimeConfig
from peer_chat.core.settings.redis_config import RedisConfig
from peer_chat.core.settings.scheduler_config import SchedulerConfig
from peer_chat.core.settings.server_config import ServerConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ChatConfig",
    "DatabaseConfig",
    "RealtimeConfig",
    "RedisConfig",
    "SchedulerConfig",
    "ServerConfig",
]
