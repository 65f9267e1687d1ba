"""Configuration module for the messaging service.

Supports multiple environments:
- development (default)
- testing
- staging
- production

Usage:
    from config import config

    threshold = config.PRESENCE_ONLINE_SECONDS
    mongo_uri = config.MONGO_URI

Set environment via FLASK_ENV or APP_ENV.
"""
from .settings import config, Config

__all__ = ['config', 'Config']
