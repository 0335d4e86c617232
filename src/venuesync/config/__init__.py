"""Config package initialization"""

from venuesync.config.settings import SyncSettings, get_settings, reload_settings

__all__ = [
    'get_settings',
    'reload_settings',
    'SyncSettings',
]
