# -*- coding: utf-8 -*-
"""
Process-level configuration and logging setup.

Values come from dataclass defaults, overridden by environment variables.
A ``.env`` file at the project root is loaded first when present.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from dotenv import load_dotenv


logger = logging.getLogger(__name__)

# Load .env file from project root if it exists
project_root = Path(__file__).parent.parent
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("true", "1", "yes")


@dataclass
class Config:
    """Engine-wide settings shared by the CLI, providers and live adapters."""

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None  # None = console only

    # Data
    data_dir: str = "data"  # Directory of <SYMBOL>.csv files for the CSV provider
    provider_timeout: float = 10.0  # Seconds for HTTP market-data / news requests
    polygon_api_key: str = ""
    tiingo_api_key: str = ""

    # Backtesting
    initial_capital: float = 10000.0
    max_workers: int = 4  # Worker threads for multi-symbol batches

    # Live execution
    order_timeout: float = 10.0  # Seconds to wait for a broker to accept an order
    binance_api_key: str = ""
    binance_api_secret: str = ""
    binance_testnet: bool = True

    def __post_init__(self):
        """Override defaults with environment variables if present."""
        self.log_level = os.getenv("STRATENGINE_LOG_LEVEL", self.log_level)
        self.log_file = os.getenv("STRATENGINE_LOG_FILE", self.log_file)
        self.data_dir = os.getenv("STRATENGINE_DATA_DIR", self.data_dir)

        if os.getenv("STRATENGINE_PROVIDER_TIMEOUT"):
            self.provider_timeout = float(os.getenv("STRATENGINE_PROVIDER_TIMEOUT"))
        if os.getenv("STRATENGINE_INITIAL_CAPITAL"):
            self.initial_capital = float(os.getenv("STRATENGINE_INITIAL_CAPITAL"))
        if os.getenv("STRATENGINE_MAX_WORKERS"):
            self.max_workers = int(os.getenv("STRATENGINE_MAX_WORKERS"))
        if os.getenv("STRATENGINE_ORDER_TIMEOUT"):
            self.order_timeout = float(os.getenv("STRATENGINE_ORDER_TIMEOUT"))

        self.polygon_api_key = os.getenv("POLYGON_API_KEY", self.polygon_api_key)
        self.tiingo_api_key = os.getenv("TIINGO_API_KEY", self.tiingo_api_key)
        self.binance_api_key = os.getenv("BINANCE_API_KEY", self.binance_api_key)
        self.binance_api_secret = os.getenv("BINANCE_API_SECRET", self.binance_api_secret)
        self.binance_testnet = _env_bool("BINANCE_TESTNET", self.binance_testnet)

        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary with secrets masked."""
        data = asdict(self)
        for key in ("polygon_api_key", "tiingo_api_key", "binance_api_key", "binance_api_secret"):
            if data[key]:
                data[key] = "***"
        return data


def setup_logging(config: Optional[Config] = None) -> logging.Logger:
    """
    Configure the ``stratengine`` logger hierarchy.

    Installs a console handler and, when ``config.log_file`` is set, a file
    handler. Calling it again replaces the handlers instead of stacking them.

    Parameters
    ----------
    config : Config or None
        Configuration to read the level and file from. Defaults to ``Config()``.

    Returns
    -------
    logging.Logger
        The package root logger.
    """
    config = config or Config()
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    root = logging.getLogger("stratengine")
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.propagate = False
    return root
