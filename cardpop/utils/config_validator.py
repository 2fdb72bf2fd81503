#!/usr/bin/env python3
"""
Configuration Validation

Validates the extraction core's environment configuration on startup and
provides helpful error messages.
"""
import os
from typing import Any, Dict, List, Mapping, Tuple

from cardpop.utils.logger import get_logger

logger = get_logger("config")

# =============================================================================
# CONFIGURATION SCHEMA
# =============================================================================

CONFIG_SCHEMA = {
    # Logging
    "LOG_LEVEL": {"type": str, "default": "INFO", "valid": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "LOG_FORMAT": {"type": str, "default": "structured", "valid": ["structured", "simple"]},
    "LOG_TO_FILE": {"type": bool, "default": True},
    "LOG_TO_CONSOLE": {"type": bool, "default": True},
    "LOG_DIR": {"type": str, "optional": True},
    "LOG_ROTATE_WHEN": {"type": str, "default": "midnight", "valid": ["midnight", "D", "H"]},
    "LOG_INTERVAL": {"type": int, "default": 1, "min": 1},

    # Targets
    "GEMRATE_BASE_URL": {"type": str, "default": "https://www.gemrate.com"},
    "CHECKLIST_BASE_URL": {"type": str, "default": "https://www.checklistinsider.com"},
    "BROWSER_FIRST_HOSTS": {"type": str, "default": "www.tcdb.com"},
    "AUTHORITY_PRIORITY": {"type": str, "default": "universal,psa"},

    # Fetching
    "LIGHTWEIGHT_TIMEOUT": {"type": int, "default": 10, "min": 1, "max": 120},
    "BROWSER_NAV_TIMEOUT": {"type": int, "default": 30, "min": 5, "max": 300},
    "BROWSER_WAIT_ATTEMPTS": {"type": int, "default": 10, "min": 1, "max": 100},
    "BROWSER_WAIT_INTERVAL": {"type": float, "default": 1.0},
    "MIN_CONTENT_LENGTH": {"type": int, "default": 500, "min": 0},
    "BROWSER_HEADLESS": {"type": bool, "default": True},

    # Browser executable
    "CHROME_EXECUTABLE_PATH": {"type": str, "optional": True},
    "BUNDLED_CHROME_PATH": {"type": str, "default": "/opt/chromium/chrome"},

    # Limits
    "MAX_CHECKLIST_PAGES": {"type": int, "default": 50, "min": 1, "max": 1000},
    "RESULT_CACHE_TTL": {"type": int, "default": 300, "min": 0},
}

# =============================================================================
# VALIDATION
# =============================================================================

class ConfigValidator:
    """Validates configuration on startup."""

    def __init__(self, environ: Mapping[str, str] = None):
        self.environ = os.environ if environ is None else environ
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.validated_config: Dict[str, Any] = {}

    def validate(self) -> Tuple[bool, Dict[str, Any]]:
        """
        Validate all configuration.

        Returns:
            (is_valid, validated_config)
        """
        for key, schema in CONFIG_SCHEMA.items():
            value = self.environ.get(key)

            if not value:
                if "default" in schema:
                    self.validated_config[key] = schema["default"]
                elif schema.get("optional", False):
                    self.validated_config[key] = None
                else:
                    self.warnings.append(f"{key} not set and has no default")
                continue

            try:
                if schema["type"] == bool:
                    value = value.lower() in ("true", "1", "yes", "on")
                elif schema["type"] == int:
                    value = int(value)
                elif schema["type"] == float:
                    value = float(value)
                else:
                    value = str(value)
            except (ValueError, TypeError):
                self.errors.append(f"{key}: Invalid type, expected {schema['type'].__name__}, got {value!r}")
                continue

            if schema["type"] in (int, float):
                if "min" in schema and value < schema["min"]:
                    self.errors.append(f"{key}: Value {value} is below minimum {schema['min']}")
                    continue
                if "max" in schema and value > schema["max"]:
                    self.errors.append(f"{key}: Value {value} is above maximum {schema['max']}")
                    continue

            if "valid" in schema and value not in schema["valid"]:
                self.errors.append(f"{key}: Value '{value}' not in valid values: {schema['valid']}")
                continue

            self.validated_config[key] = value

        for error in self.errors:
            logger.error(f"Config validation error: {error}")

        for warning in self.warnings:
            logger.warning(f"Config validation warning: {warning}")

        if not self.errors:
            logger.info("Configuration validated successfully", extra={
                "warnings": len(self.warnings),
                "validated_keys": len(self.validated_config),
            })

        return len(self.errors) == 0, self.validated_config

    def get_summary(self) -> Dict[str, Any]:
        """Get validation summary."""
        return {
            "valid": len(self.errors) == 0,
            "errors": self.errors,
            "warnings": self.warnings,
            "validated_keys": len(self.validated_config),
        }


def validate_config(environ: Mapping[str, str] = None) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate configuration on startup.

    Returns:
        (is_valid, validated_config)
    """
    return ConfigValidator(environ).validate()
