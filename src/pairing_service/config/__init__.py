"""Configuration module"""

from pairing_service.config.settings import Settings, load_settings

__all__ = ['Settings', 'load_settings']
