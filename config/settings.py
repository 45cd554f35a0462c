"""Application configuration settings.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    secret = config.JWT_SECRET
    queue_size = config.OFFLINE_QUEUE_MAX_PER_USER
"""
import os
from pathlib import Path
from typing import Optional, Any, Dict
import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'test': 'test',
    'testing': 'test',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
}

DEFAULT_ENV = 'development'


def _env_flag(name: str) -> Optional[bool]:
    env_val = os.getenv(name, '').lower()
    if env_val:
        return env_val in ('1', 'true', 'yes')
    return None


class Config:
    """Centralized application configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml (for local development overrides)
    3. config.{env}.yaml (environment-specific)
    4. config.base.yaml (shared defaults)

    Environment is determined by APP_ENV, then FLASK_ENV, then 'development'.
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        env = os.getenv('APP_ENV') or os.getenv('FLASK_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _load_config(self):
        """Load configuration from YAML files based on environment."""
        config_dir = Path(__file__).parent
        Config._current_env = self._get_environment()
        Config._config_data = {}

        base_config_path = config_dir / 'config.base.yaml'
        if base_config_path.exists():
            with open(base_config_path, 'r') as f:
                Config._config_data = yaml.safe_load(f) or {}

        env_config_map = {
            'development': 'config.dev.yaml',
            'test': 'config.test.yaml',
            'staging': 'config.staging.yaml',
            'production': 'config.prod.yaml',
        }
        env_config_path = config_dir / env_config_map.get(Config._current_env, 'config.dev.yaml')
        if env_config_path.exists():
            with open(env_config_path, 'r') as f:
                env_data = yaml.safe_load(f) or {}
                Config._config_data = self._deep_merge(Config._config_data, env_data)

        # Local overrides (not in git)
        local_config_path = config_dir / 'config.local.yaml'
        if local_config_path.exists():
            with open(local_config_path, 'r') as f:
                local_data = yaml.safe_load(f) or {}
                Config._config_data = self._deep_merge(Config._config_data, local_data)

        Config._loaded = True

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    def _get_int(self, env_name: str, *keys, default: int) -> int:
        env_val = os.getenv(env_name)
        if env_val:
            return int(env_val)
        return int(self._get_yaml_value(*keys, default=default))

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        return cls()

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def CURRENT_ENV(self) -> str:
        return Config._current_env

    # ==========================================================================
    # Application Settings
    # ==========================================================================

    @property
    def DEBUG(self) -> bool:
        """Flask debug mode."""
        flag = _env_flag('FLASK_DEBUG')
        if flag is not None:
            return flag
        return self._get_yaml_value('app', 'debug', default=False)

    @property
    def PORT(self) -> int:
        return self._get_int('PORT', 'app', 'port', default=5000)

    @property
    def APP_NAME(self) -> str:
        return os.getenv('APP_NAME') or self._get_yaml_value('app', 'name', default='DocConnect Messaging')

    # ==========================================================================
    # Security Settings
    # ==========================================================================

    @property
    def JWT_SECRET(self) -> Optional[str]:
        """JWT signing secret. Required outside development."""
        return os.getenv('JWT_SECRET') or self._get_yaml_value('security', 'jwt', 'secret')

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv('JWT_ALGORITHM') or self._get_yaml_value('security', 'jwt', 'algorithm', default='HS256')

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        return self._get_int('ACCESS_TOKEN_MINUTES', 'security', 'jwt', 'access_token_expire_minutes', default=10080)

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def MONGO_URI(self) -> str:
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def MESSAGING_DB_NAME(self) -> str:
        return os.getenv('MONGO_DB') or self._get_yaml_value('database', 'name', default='docconnect')

    # ==========================================================================
    # CORS Settings
    # ==========================================================================

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv('CORS_ORIGINS') or self._get_yaml_value('cors', 'origins', default='*')

    @property
    def CORS_ORIGINS_LIST(self) -> list:
        origins = self.CORS_ORIGINS
        if origins == '*':
            return ['*']
        return [o.strip() for o in origins.split(',') if o.strip()]

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        if _env_flag('LOG_DEBUG'):
            return 'DEBUG'
        return self._get_yaml_value('logging', 'level', default='INFO')

    @property
    def LOG_PATTERN(self) -> str:
        return os.getenv('LOG_PATTERN') or self._get_yaml_value('logging', 'pattern', default='%(message)s')

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        pattern = self.LOG_PATTERN
        if pattern and pattern != '%(message)s':
            return pattern

        parts = []
        if self._get_yaml_value('logging', 'include_datetime', default=True):
            parts.append('%(asctime)s')
        if self._get_yaml_value('logging', 'include_name', default=True):
            parts.append('%(name)s')
        if self._get_yaml_value('logging', 'include_level', default=True):
            parts.append('%(levelname)s')
        parts.append('%(message)s')
        return ' - '.join(parts) if len(parts) > 1 else parts[0]

    # ==========================================================================
    # Messaging Settings
    # ==========================================================================

    @property
    def SOCKET_PING_INTERVAL(self) -> int:
        """Seconds between server heartbeats."""
        return self._get_int('SOCKET_PING_INTERVAL', 'socket', 'ping_interval', default=25)

    @property
    def SOCKET_PING_TIMEOUT(self) -> int:
        """Seconds without a pong before a connection counts as gone."""
        return self._get_int('SOCKET_PING_TIMEOUT', 'socket', 'ping_timeout', default=60)

    @property
    def OFFLINE_QUEUE_MAX_PER_USER(self) -> int:
        return self._get_int('OFFLINE_QUEUE_MAX_PER_USER', 'messaging', 'offline_queue_max_per_user', default=100)

    @property
    def DEFAULT_PAGE_LIMIT(self) -> int:
        return self._get_int('DEFAULT_PAGE_LIMIT', 'messaging', 'default_page_limit', default=20)

    @property
    def MAX_PAGE_LIMIT(self) -> int:
        return self._get_int('MAX_PAGE_LIMIT', 'messaging', 'max_page_limit', default=100)

    @property
    def MAX_MESSAGE_LENGTH(self) -> int:
        return self._get_int('MAX_MESSAGE_LENGTH', 'messaging', 'max_message_length', default=5000)

    def to_dict(self) -> Dict[str, Any]:
        """Export non-secret config values (for debugging)."""
        return {
            'env': self.CURRENT_ENV,
            'app': {'name': self.APP_NAME, 'debug': self.DEBUG, 'port': self.PORT},
            'database': {
                'mongo_uri': '***' if self.MONGO_URI else None,
                'name': self.MESSAGING_DB_NAME,
            },
            'cors': {'origins': self.CORS_ORIGINS},
            'logging': {'level': self.LOG_LEVEL},
            'socket': {
                'ping_interval': self.SOCKET_PING_INTERVAL,
                'ping_timeout': self.SOCKET_PING_TIMEOUT,
            },
            'messaging': {
                'offline_queue_max_per_user': self.OFFLINE_QUEUE_MAX_PER_USER,
                'default_page_limit': self.DEFAULT_PAGE_LIMIT,
                'max_page_limit': self.MAX_PAGE_LIMIT,
                'max_message_length': self.MAX_MESSAGE_LENGTH,
            },
        }


# Singleton config instance
config = Config()
