#!/usr/bin/env python3
"""
Configuration management for the Bangla news aggregator.

This module centralizes all configuration loading, validation, and management.
It handles environment variables, validation, and provides a clean interface
for accessing configuration values throughout the application.
"""

from os import environ, path, access, R_OK
from typing import Dict, Any, List
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import load_dotenv

def _setup_global_logger():
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    The logger outputs to stdout with line buffering for real-time logging.
    All modules should use get_logger() to create module-specific loggers that inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"

    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True  # Force reconfiguration if already configured
    )

    sys.stdout.reconfigure(line_buffering=True)
    sys.stderr.reconfigure(line_buffering=True)

    # Relay timeouts are routine; keep aiohttp's own chatter down
    getLogger("aiohttp").setLevel(WARNING)

    return getLogger("BanglaNews")

def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    This function creates a logger with a name in the format "BanglaNews.{name}".

    Args:
        name: The logger name (e.g., "proxy", "feed_parser", "merge")

    Returns:
        A logger instance with the unified configuration
    """
    return getLogger(f"BanglaNews.{name}")

# Create single global logger instance
logger = _setup_global_logger()

DEFAULT_RELAYS: List[str] = [
    'https://corsproxy.io/?',
    'https://api.codetabs.com/v1/proxy?quest=',
    'https://thingproxy.freeboard.io/fetch/',
]

DEFAULT_SOURCES: List[Dict[str, str]] = [
    {'name': 'জাগো নিউজ ২৪', 'id': 'jago-news', 'url': 'https://www.jagonews24.com/rss/rss.xml',
     'homepage': 'https://www.jagonews24.com/', 'color': '#f68b1e'},
    {'name': 'রাইজিংবিডি', 'id': 'risingbd', 'url': 'https://www.risingbd.com/rss/rss.xml',
     'homepage': 'https://www.risingbd.com/', 'color': '#dc2626'},
    {'name': 'প্রথম আলো', 'id': 'prothom-alo', 'url': 'https://www.prothomalo.com/feed/',
     'homepage': 'https://www.prothomalo.com/', 'color': '#ed1c24'},
    {'name': 'বিডিনিউজ২৪', 'id': 'bdnews24', 'url': 'https://bangla.bdnews24.com/feed',
     'homepage': 'https://bangla.bdnews24.com/', 'color': '#be1e2d'},
    {'name': 'সময় টিভি', 'id': 'somoy-tv', 'url': 'https://www.somoynews.tv/feed',
     'homepage': 'https://www.somoynews.tv/', 'color': '#1e40af'},
    {'name': 'এনটিভি', 'id': 'ntv', 'url': 'https://www.ntvbd.com/feed',
     'homepage': 'https://www.ntvbd.com/', 'color': '#059669'},
    {'name': 'চ্যানেল আই', 'id': 'channel-i', 'url': 'https://www.channelionline.com/feed',
     'homepage': 'https://www.channelionline.com/', 'color': '#7c3aed'},
    {'name': 'ডেইলি স্টার বাংলা', 'id': 'daily-star', 'url': 'https://www.thedailystar.net/bangla/feed',
     'homepage': 'https://bangla.thedailystar.net/', 'color': '#0891b2'},
]

class Config:
    """Configuration manager for the news aggregator.

    This class handles loading and validation of configuration from multiple sources:
    1. Environment variables
    2. .env file (if present)
    3. YAML secrets file (if SECRETS_FILE environment variable is set)
    4. sources.yaml configuration file (relays and news sources)

    The loading order ensures that:
    - .env file variables override system environment variables
    - Secrets file variables override both system and .env variables
    """

    def __init__(self):
        """Initialize configuration with environment variables and validation."""
        self._load_environment()
        self._validate_and_set_config()
        self._load_sources()

    def _load_environment(self):
        """Load environment variables from .env file and secrets file if present."""
        dotenv_path = path.join(path.dirname(path.abspath(__file__)), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

        self._load_secrets_file()

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_positive_float(self, env_var: str, default: float, min_val: float = 0.1) -> float:
        """Validate and parse a positive float environment variable."""
        try:
            value = float(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_and_set_config(self):
        """Validate and set all configuration values."""
        # Basic configuration
        self.DATABASE_PATH = environ.get("DATABASE_PATH", "news.db")
        self.USER_AGENT = environ.get("USER_AGENT", "Mozilla/5.0 (compatible; BanglaNewsAggregator/1.0)")
        self.DIRECT_FETCH = environ.get("DIRECT_FETCH", "false").lower() == "true"
        self.SOURCE_TIMEZONE = environ.get("SOURCE_TIMEZONE", "Asia/Dhaka")

        # HTTP request configuration
        self.HTTP_TIMEOUT = self._validate_positive_int("HTTP_TIMEOUT", 8, 1)
        self.ARTICLE_HTTP_TIMEOUT = self._validate_positive_int("ARTICLE_HTTP_TIMEOUT", 10, 1)
        self.MIN_RESPONSE_LENGTH = self._validate_positive_int("MIN_RESPONSE_LENGTH", 100, 1)

        # Courtesy delays between sources and between image page fetches
        self.RATE_LIMIT_DELAY = self._validate_positive_float("RATE_LIMIT_DELAY", 0.8, 0.0)
        self.IMAGE_SCRAPE_DELAY = self._validate_positive_float("IMAGE_SCRAPE_DELAY", 0.3, 0.0)

        # Article window and extraction limits
        self.MAX_AGE_DAYS = self._validate_positive_int("MAX_AGE_DAYS", 3, 1)
        self.HOMEPAGE_ITEM_LIMIT = self._validate_positive_int("HOMEPAGE_ITEM_LIMIT", 15, 1)
        self.HOMEPAGE_STAGGER_SECONDS = self._validate_positive_int("HOMEPAGE_STAGGER_SECONDS", 60, 1)
        self.SHORT_CONTENT_LENGTH = self._validate_positive_int("SHORT_CONTENT_LENGTH", 150, 10)

        # Clustering
        self.CLUSTER_THRESHOLD = self._validate_positive_float("CLUSTER_THRESHOLD", 0.25, 0.01)

        # Refresh and cache behaviour
        self.AUTO_REFRESH_INTERVAL = self._validate_positive_int("AUTO_REFRESH_INTERVAL", 120, 10)
        self.CACHE_MAX_AGE_HOURS = self._validate_positive_int("CACHE_MAX_AGE_HOURS", 24, 1)
        self.IMAGE_CACHE_TTL_HOURS = self._validate_positive_int("IMAGE_CACHE_TTL_HOURS", 24, 1)
        self.ITEMS_PER_PAGE = self._validate_positive_int("ITEMS_PER_PAGE", 20, 1)

        # File size limits
        self.SCHEMA_FILE_SIZE_LIMIT_MB = self._validate_positive_int("SCHEMA_FILE_SIZE_LIMIT_MB", 10, 1)

        # File paths
        base_dir = path.dirname(path.abspath(__file__))
        self.SCHEMA_FILE_PATH = path.join(base_dir, "schema.sql")
        self.SOURCES_CONFIG_PATH = environ.get("SOURCES_CONFIG_PATH", path.join(base_dir, "sources.yaml"))

    def _load_secrets_file(self):
        """Load environment variable overrides from a YAML secrets file.

        If SECRETS_FILE environment variable is set, loads the specified YAML file
        (a top-level mapping, or a mapping nested under `environment`) and sets
        environment variables from it.
        """
        secrets_file_path = environ.get("SECRETS_FILE")
        if not secrets_file_path:
            return

        secrets_config = self._safe_read_yaml(secrets_file_path, 2 * 1024 * 1024, 'secrets')
        if not isinstance(secrets_config, dict):
            if secrets_config is not None:
                logger.warning(f"Secrets file {secrets_file_path} must be a YAML mapping at the top level")
            return

        env_vars = secrets_config.get('environment') if isinstance(secrets_config.get('environment'), dict) else secrets_config
        secrets_loaded = 0
        for key, value in env_vars.items():
            if isinstance(key, str) and value is not None:
                environ[key] = str(value)
                secrets_loaded += 1
            else:
                logger.warning(f"Skipping invalid environment variable in secrets file: {key}={value}")
        logger.info(f"Loaded {secrets_loaded} environment variables from secrets file {secrets_file_path}")

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Args:
            file_path: Path to the YAML file
            max_size: Maximum allowed file size in bytes
            kind: Short label for logging context (e.g. 'secrets', 'sources')

        Returns:
            Parsed YAML (mapping/list/primitive) or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.warning(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def _load_sources(self) -> None:
        """Populate self.RELAYS and self.SOURCES from sources.yaml.

        Any missing or invalid section falls back to the built-in defaults.
        """
        sources_path = self.SOURCES_CONFIG_PATH
        config_data = self._safe_read_yaml(sources_path, 1024 * 1024, 'sources')
        if not isinstance(config_data, dict):
            config_data = {}

        relays = config_data.get('relays')
        if isinstance(relays, list) and relays:
            self.RELAYS = [str(r).strip() for r in relays if isinstance(r, str) and r.strip()]
        else:
            self.RELAYS = list(DEFAULT_RELAYS)

        sources_section = config_data.get('sources')
        if not isinstance(sources_section, list):
            self.SOURCES = [dict(s) for s in DEFAULT_SOURCES]
            logger.info(f"Using {len(self.SOURCES)} built-in news sources")
            return

        self.SOURCES = parse_sources(sources_section)
        logger.info(f"Loaded {len(self.SOURCES)} sources and {len(self.RELAYS)} relays from {sources_path}")

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "database_path": self.DATABASE_PATH,
            "http_timeout": self.HTTP_TIMEOUT,
            "rate_limit_delay": self.RATE_LIMIT_DELAY,
            "max_age_days": self.MAX_AGE_DAYS,
            "auto_refresh_interval": self.AUTO_REFRESH_INTERVAL,
            "relay_count": len(self.RELAYS),
            "source_count": len(self.SOURCES),
            "direct_fetch": self.DIRECT_FETCH,
        }


def parse_sources(entries: List[Any]) -> List[Dict[str, str]]:
    """Validate raw source entries, skipping anything without a name and id."""
    sources: List[Dict[str, str]] = []
    seen_ids = set()
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get('id') or not entry.get('name'):
            logger.warning(f"Skipping invalid source configuration: {entry}")
            continue
        if not entry.get('url') and not entry.get('homepage'):
            logger.warning(f"Source {entry['id']} has neither url nor homepage; skipping")
            continue
        if entry['id'] in seen_ids:
            logger.warning(f"Duplicate source id {entry['id']}; keeping the first")
            continue
        seen_ids.add(entry['id'])
        sources.append({
            'name': str(entry['name']),
            'id': str(entry['id']),
            'url': entry.get('url') or None,
            'homepage': entry.get('homepage') or None,
            'color': entry.get('color') or '#64748b',
        })
    return sources

# Global configuration instance
config = Config()
