"""
Configuration module for the Pulse round engine
Centralizes game rules, feed settings and catalogues with validation
"""

import os
import json
import logging
import threading
from pathlib import Path
from decimal import Decimal
from typing import Dict, Any, Optional, Union


class ConfigError(Exception):
    """Configuration validation error"""
    pass


def _safe_int_env(name: str, default: int, min_val: int = None, max_val: int = None) -> int:
    """
    Safely parse integer environment variable with bounds.
    Falls back to default on invalid values.
    """
    logger_local = logging.getLogger(__name__)
    try:
        value = int(os.getenv(name, str(default)))
        if min_val is not None:
            value = max(min_val, value)
        if max_val is not None:
            value = min(max_val, value)
        return value
    except (ValueError, TypeError):
        logger_local.warning(f"Invalid {name}, using default {default}")
        return default


def _safe_float_env(name: str, default: float, min_val: float = None) -> float:
    """Float counterpart of _safe_int_env"""
    logger_local = logging.getLogger(__name__)
    try:
        value = float(os.getenv(name, str(default)))
        if min_val is not None:
            value = max(min_val, value)
        return value
    except (ValueError, TypeError):
        logger_local.warning(f"Invalid {name}, using default {default}")
        return default


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Configuration management with:
    - Environment variable overrides (PULSE_ prefix)
    - Validation collected into a single ConfigError
    - Custom per-key overrides (get/set)
    - JSON persistence with Decimal preservation
    """

    # ========== Financial Settings ==========
    FINANCIAL = {
        'initial_balance': Decimal('1000'),
        'min_bet': Decimal('0.01'),
        'max_bet': Decimal('1000000'),
        'decimal_precision': 18,
    }

    # ========== Game Rules ==========
    GAME_RULES = {
        'default_duration_sec': 30,
        # Seconds before close_time when stakes stop being accepted (0 = lock at close)
        'lock_window_sec': _safe_int_env('PULSE_LOCK_WINDOW_SEC', 0, 0),
        # 'refund' returns stakes on a push, 'forfeit' sends the pool to the treasury
        'push_policy': os.getenv('PULSE_PUSH_POLICY', 'refund').strip().lower(),
        'treasury_fee_rate': Decimal('0.01'),
        'apply_treasury_fee': _env_flag('PULSE_APPLY_TREASURY_FEE', False),
        'opening_up_pool': Decimal('0'),
        'opening_down_pool': Decimal('0'),
        'expiry_check_interval_sec': 1.0,
    }

    # ========== Price Feed ==========
    PRICE_FEED = {
        'default_asset': 'CELO',
        'initial_price': Decimal('0.65'),
        'coingecko_base_url': os.getenv('PULSE_COINGECKO_URL', 'https://api.coingecko.com/api/v3'),
        'live_interval_sec': _safe_float_env('PULSE_LIVE_INTERVAL_SEC', 10.0, 1.0),
        'synthetic_interval_sec': _safe_float_env('PULSE_SYNTHETIC_INTERVAL_SEC', 1.0, 0.1),
        'live_retry_sec': _safe_float_env('PULSE_LIVE_RETRY_SEC', 60.0, 1.0),
        'synthetic_volatility': 0.0005,
        'min_price': Decimal('0.01'),
    }

    # ========== Price History ==========
    HISTORY = {
        'max_points': 60,
        'backfill_count': 40,
        'backfill_interval_sec': 2.0,
        'startup_volatility': 0.002,
        'backfill_volatility': 0.003,
    }

    # ========== Sentiment ==========
    SENTIMENT = {
        'api_key': os.getenv('PULSE_GEMINI_API_KEY', os.getenv('API_KEY', '')),
        'model': os.getenv('PULSE_GEMINI_MODEL', 'gemini-2.5-flash'),
        'base_url': 'https://generativelanguage.googleapis.com/v1beta',
        'history_points': 15,
        'simulated_delay_sec': 1.5,
    }

    # ========== HTTP API ==========
    API = {
        'host': os.getenv('PULSE_API_HOST', '127.0.0.1'),
        'port': _safe_int_env('PULSE_API_PORT', 5050, 1, 65535),
        'default_user': 'local',
    }

    # ========== Memory Management ==========
    MEMORY = {
        'max_archived_rounds': _safe_int_env('PULSE_MAX_ARCHIVED_ROUNDS', 1000, 10, 1000000),
    }

    # ========== Logging Settings ==========
    LOGGING = {
        'level': os.getenv('LOG_LEVEL', 'INFO'),
        'log_dir': os.getenv('PULSE_LOG_DIR', str(Path.home() / '.pulse' / 'logs')),
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'date_format': '%Y-%m-%d %H:%M:%S',
        'max_bytes': 5 * 1024 * 1024,
        'backup_count': 3,
        'json_logs': False,
    }

    # ========== Network Settings ==========
    NETWORK = {
        'timeout': _safe_float_env('PULSE_HTTP_TIMEOUT', 5.0, 0.1),
    }

    # ========== Catalogues ==========
    ASSETS = (
        {'symbol': 'CELO', 'name': 'Celo Native', 'coingecko_id': 'celo', 'category': 'Major'},
        {'symbol': 'BTC', 'name': 'Bitcoin', 'coingecko_id': 'bitcoin', 'category': 'Major'},
        {'symbol': 'ETH', 'name': 'Ethereum', 'coingecko_id': 'ethereum', 'category': 'Major'},
        {'symbol': 'SOL', 'name': 'Solana', 'coingecko_id': 'solana', 'category': 'Volatile'},
        {'symbol': 'DOGE', 'name': 'Dogecoin', 'coingecko_id': 'dogecoin', 'category': 'Volatile'},
        {'symbol': 'PEPE', 'name': 'Pepe', 'coingecko_id': 'pepe', 'category': 'Volatile'},
        {'symbol': 'WIF', 'name': 'dogwifhat', 'coingecko_id': 'dogwifhat', 'category': 'Volatile'},
        {'symbol': 'SHIB', 'name': 'Shiba Inu', 'coingecko_id': 'shiba-inu', 'category': 'Volatile'},
        {'symbol': 'BONK', 'name': 'Bonk', 'coingecko_id': 'bonk', 'category': 'Volatile'},
        {'symbol': 'FLOKI', 'name': 'Floki', 'coingecko_id': 'floki', 'category': 'Volatile'},
    )

    DURATIONS = (
        {'label': '30s', 'value': 30},
        {'label': '5m', 'value': 300},
        {'label': '15m', 'value': 900},
        {'label': '1h', 'value': 3600},
        {'label': '4h', 'value': 14400},
        {'label': '1d', 'value': 86400},
        {'label': '1w', 'value': 604800},
        {'label': '1y', 'value': 31536000},
    )

    PUSH_POLICIES = ('refund', 'forfeit')

    def __init__(self, config_file: Optional[str] = None, validate: bool = True):
        """
        Initialize configuration with optional validation

        Args:
            config_file: Optional path to JSON config file
            validate: Whether to validate configuration on init
        """
        self._lock = threading.RLock()
        self.config_file = config_file
        self._custom_settings = {}
        self._logger = None  # Will be set after logger initialization

        if config_file:
            self.load_from_file(config_file)

        if validate:
            self.validate()

    def validate(self):
        """
        Validate all configuration values

        Raises:
            ConfigError: If configuration is invalid
        """
        errors = []

        # Financial
        if self.get('financial', 'initial_balance') < 0:
            errors.append("initial_balance cannot be negative")
        if self.get('financial', 'min_bet') <= 0:
            errors.append("min_bet must be positive")
        if self.get('financial', 'max_bet') <= self.get('financial', 'min_bet'):
            errors.append("max_bet must be greater than min_bet")

        # Game rules
        default_duration = self.get('game_rules', 'default_duration_sec')
        if default_duration not in self.duration_values():
            errors.append(f"default_duration_sec {default_duration} is not a catalogue duration")
        lock_window = self.get('game_rules', 'lock_window_sec')
        if lock_window < 0:
            errors.append("lock_window_sec cannot be negative")
        elif lock_window >= min(self.duration_values()):
            errors.append("lock_window_sec must be shorter than the shortest round")
        if self.get('game_rules', 'push_policy') not in self.PUSH_POLICIES:
            errors.append(f"Invalid push_policy: {self.get('game_rules', 'push_policy')}")
        fee_rate = self.get('game_rules', 'treasury_fee_rate')
        if fee_rate < 0 or fee_rate >= 1:
            errors.append("treasury_fee_rate must be in [0, 1)")
        if self.get('game_rules', 'opening_up_pool') < 0 or self.get('game_rules', 'opening_down_pool') < 0:
            errors.append("opening pools cannot be negative")
        if self.get('game_rules', 'expiry_check_interval_sec') <= 0:
            errors.append("expiry_check_interval_sec must be positive")

        # Price feed
        if self.get('price_feed', 'default_asset') not in self.asset_symbols():
            errors.append(f"Unknown default_asset: {self.get('price_feed', 'default_asset')}")
        if self.get('price_feed', 'initial_price') <= 0:
            errors.append("initial_price must be positive")
        if self.get('price_feed', 'synthetic_volatility') <= 0:
            errors.append("synthetic_volatility must be positive")

        # History
        if self.get('history', 'max_points') < 2:
            errors.append("history max_points must be at least 2")
        if self.get('history', 'backfill_count') > self.get('history', 'max_points'):
            errors.append("backfill_count cannot exceed max_points")
        if self.get('history', 'backfill_interval_sec') <= 0:
            errors.append("backfill_interval_sec must be positive")

        # Network
        if self.get('network', 'timeout') <= 0:
            errors.append("Network timeout must be positive")

        # Logging
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(self.get('logging', 'level')).upper() not in valid_levels:
            errors.append(f"Invalid log level: {self.get('logging', 'level')}")

        if errors:
            raise ConfigError("Configuration validation failed:\n" + "\n".join(errors))

    # ========== Catalogue Helpers ==========

    def asset_symbols(self) -> list:
        return [asset['symbol'] for asset in self.ASSETS]

    def duration_values(self) -> list:
        return [duration['value'] for duration in self.DURATIONS]

    def find_asset(self, symbol: str) -> Optional[dict]:
        """Look up an asset by symbol (case-insensitive)"""
        if not isinstance(symbol, str):
            return None
        wanted = symbol.strip().upper()
        for asset in self.ASSETS:
            if asset['symbol'] == wanted:
                return asset
        return None

    # ========== Persistence ==========

    def load_from_file(self, filepath: Union[str, Path]):
        """
        Load configuration overrides from a JSON file

        Args:
            filepath: Path to JSON configuration file
        """
        filepath = Path(filepath)

        try:
            if not filepath.exists():
                if self._logger:
                    self._logger.warning(f"Config file not found: {filepath}")
                return

            with open(filepath, 'r') as f:
                data = json.load(f)

            for section, values in list(data.items()):
                if isinstance(values, dict):
                    data[section] = self._deserialize_dict(values)

            with self._lock:
                self._custom_settings = data

            if self._logger:
                self._logger.info(f"Loaded configuration from {filepath}")

        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file: {e}")
        except OSError as e:
            raise ConfigError(f"Error loading config file: {e}")

    def save_to_file(self, filepath: Union[str, Path]):
        """Save current configuration (defaults merged with overrides) to JSON"""
        filepath = Path(filepath)
        config_dict = self.to_dict()
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w') as f:
            json.dump(config_dict, f, indent=2, default=str)

        if self._logger:
            self._logger.info(f"Saved configuration to {filepath}")

    def _serialize_dict(self, d: dict) -> dict:
        """Serialize dict with type preservation"""
        result = {}
        for key, value in d.items():
            if isinstance(value, Decimal):
                result[key] = {'__decimal__': str(value)}
            else:
                result[key] = value
        return result

    def _deserialize_dict(self, d: dict) -> dict:
        """Deserialize dict with type restoration"""
        result = {}
        for key, value in d.items():
            if isinstance(value, dict) and '__decimal__' in value:
                result[key] = Decimal(value['__decimal__'])
            else:
                result[key] = value
        return result

    # ========== Access ==========

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get configuration value with support for custom settings

        Args:
            section: Configuration section name
            key: Configuration key
            default: Default value if not found
        """
        with self._lock:
            section_lower = section.lower()
            if section_lower in self._custom_settings:
                if key in self._custom_settings[section_lower]:
                    return self._custom_settings[section_lower][key]

            section_dict = getattr(self, section.upper(), None)
            if isinstance(section_dict, dict):
                return section_dict.get(key, default)

        return default

    def set(self, section: str, key: str, value: Any):
        """Set a configuration override"""
        with self._lock:
            section_lower = section.lower()
            if section_lower not in self._custom_settings:
                self._custom_settings[section_lower] = {}
            self._custom_settings[section_lower][key] = value

    def section(self, section: str) -> Dict[str, Any]:
        """Return a section with overrides applied"""
        with self._lock:
            merged = dict(getattr(self, section.upper(), {}))
            merged.update(self._custom_settings.get(section.lower(), {}))
            return merged

    def set_logger(self, logger):
        """Set logger instance after logger initialization"""
        self._logger = logger

    def to_dict(self) -> dict:
        """Export configuration as a JSON-friendly dictionary (API key omitted)"""
        sentiment = self.section('sentiment')
        sentiment.pop('api_key', None)
        return {
            'financial': self._serialize_dict(self.section('financial')),
            'game_rules': self._serialize_dict(self.section('game_rules')),
            'price_feed': self._serialize_dict(self.section('price_feed')),
            'history': self.section('history'),
            'sentiment': sentiment,
            'api': self.section('api'),
            'memory': self.section('memory'),
            'logging': self.section('logging'),
            'network': self.section('network'),
        }


# Global configuration instance.
#
# Keep this import side-effect free: validation and logging setup happen in
# the explicit startup path (see `src/main.py`).
config = Config(validate=False)
