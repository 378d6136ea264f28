"""
Environment-specific logging configuration
"""
import logging
import os
from typing import Dict, Any


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration based on environment"""

    is_production = os.getenv("RENDER") is not None or os.getenv("ENV") == "production"
    is_debug = os.getenv("DEBUG", "false").lower() == "true"

    config = {
        "production": {
            # Production: only warnings, keep regeneration outcomes visible
            "default_level": "WARNING",
            "console_format": "%(levelname)s - %(message)s",
            "suppress_modules": [
                "agents.generation.content_distributor",
                "agents.generation.content_normalizer",
                "agents.generation.section_store",
            ],
            "verbose_modules": [
                "agents.generation.regeneration_orchestrator",
            ],
        },
        "development": {
            "default_level": "INFO",
            "console_format": "%(asctime)s - %(levelname)s - %(message)s",
            "suppress_modules": [],
            "verbose_modules": [],
        },
        "debug": {
            "default_level": "DEBUG",
            "console_format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
            "suppress_modules": [],
            "verbose_modules": [],
        },
    }

    if is_debug:
        selected_config = config["debug"]
    elif is_production:
        selected_config = config["production"]
    else:
        selected_config = config["development"]

    selected_config["environment"] = "debug" if is_debug else ("production" if is_production else "development")

    return selected_config


def apply_logging_config(config: Dict[str, Any] = None) -> Dict[str, Any]:
    """Apply logging configuration to Python's logging system"""
    if config is None:
        config = get_logging_config()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config["default_level"]))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(config["console_format"]))
    root_logger.handlers = [console_handler]

    for module in config.get("suppress_modules", []):
        logging.getLogger(module).setLevel(logging.WARNING)

    # Regeneration outcomes stay visible even when the root is quiet
    for module in config.get("verbose_modules", []):
        logging.getLogger(module).setLevel(logging.INFO)

    return config
