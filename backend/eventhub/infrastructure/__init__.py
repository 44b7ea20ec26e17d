"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .connection_manager import ConnectionManager, NotificationChannel, connection_manager

__all__ = ['ConnectionManager', 'NotificationChannel', 'connection_manager']
