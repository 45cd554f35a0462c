"""Configuration module for the messaging server.

Supports multiple environments:
- development (default)
- test
- staging
- production

Usage:
    from config import config

    mongo_uri = config.MONGO_URI

Set environment via APP_ENV=production (or FLASK_ENV).
"""
from .settings import config, Config

__all__ = ['config', 'Config']
