#!/usr/bin/env python3
"""
Configuration validation for the castellan IRC bot.

config.yaml only holds what the bot needs before it can reach its database:
where the database lives, who the administrators are, logging switches and
per-plugin tuning. The server, channels and plugins themselves live in the
roster database.
"""

import os
import re
import sys
import yaml
import logging
from typing import Dict, Any, List, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass
from enum import Enum

# Sections validated on their own; everything else is a plugin section
KNOWN_SECTIONS = ("core", "database", "connection", "squire")


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Critical issue that prevents startup
    WARNING = "warning"  # Issue that should be fixed but won't prevent startup
    INFO = "info"        # Informational message


@dataclass
class ValidationIssue:
    """Represents a configuration validation issue."""
    severity: ValidationSeverity
    path: str            # Configuration path (e.g., "database.path")
    message: str         # Human-readable error message
    current_value: Any   # Current invalid value
    expected: str        # Expected value/range description


class ConfigValidator:
    """Configuration validator for castellan."""

    def __init__(self, config_path: Path, logger: Optional[logging.Logger] = None):
        self.config_path = config_path
        self.logger = logger or logging.getLogger(__name__)
        self.issues: List[ValidationIssue] = []

    def _issue(self, severity: ValidationSeverity, path: str, message: str, current: Any, expected: str):
        self.issues.append(ValidationIssue(severity, path, message, current, expected))

    def validate_and_load(self) -> Tuple[Optional[Dict[str, Any]], List[ValidationIssue]]:
        """
        Validate and load configuration with environment variable substitution.

        Returns:
            Tuple of (config_dict, validation_issues)
            config_dict is None if critical errors are found
        """
        self.issues = []

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            self._issue(ValidationSeverity.ERROR, "config_file",
                        f"Configuration file not found: {self.config_path}",
                        None, "Create config.yaml from config.yaml.default")
            return None, self.issues
        except yaml.YAMLError as e:
            self._issue(ValidationSeverity.ERROR, "config_file",
                        f"Invalid YAML syntax: {e}", None, "Fix YAML syntax errors")
            return None, self.issues
        except OSError as e:
            self._issue(ValidationSeverity.ERROR, "config_file",
                        f"Error reading config file: {e}", None, "Check file permissions and format")
            return None, self.issues

        if not isinstance(config, dict):
            self._issue(ValidationSeverity.ERROR, "config_file",
                        "Top level of the configuration must be a mapping",
                        type(config).__name__, "core: {...}")
            return None, self.issues

        config = self._substitute_env_vars(config)

        self.validate(config)

        critical_errors = [issue for issue in self.issues if issue.severity == ValidationSeverity.ERROR]
        if critical_errors:
            self.logger.error("Critical configuration errors found:")
            for issue in critical_errors:
                self.logger.error(f"  {issue.path}: {issue.message}")
            return None, self.issues

        return config, self.issues

    def validate(self, config: Dict[str, Any]) -> List[ValidationIssue]:
        """Run every section check against an already-loaded config."""
        self._validate_core_config(config)
        self._validate_database_config(config)
        self._validate_connection_config(config)
        self._validate_squire_config(config)
        self._validate_plugin_sections(config)
        return self.issues

    def _substitute_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Substitute environment variables in configuration values."""
        def substitute_recursive(obj, path=""):
            if isinstance(obj, dict):
                return {k: substitute_recursive(v, f"{path}.{k}" if path else k) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [substitute_recursive(item, f"{path}[]") for item in obj]
            elif isinstance(obj, str):
                return self._substitute_env_string(obj, path)
            else:
                return obj

        return substitute_recursive(config)

    def _substitute_env_string(self, value: str, path: str) -> str:
        """Substitute environment variables in a string value."""
        # Skip substitution for bcrypt hashes (they contain $ signs)
        if path == "core.super_admin_password_hash":
            return value

        # Pattern for ${VAR_NAME} or $VAR_NAME
        pattern = r'\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)'

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            env_value = os.getenv(var_name)

            if env_value is None:
                if any(keyword in path.lower() for keyword in ['key', 'pass', 'secret', 'token']):
                    self._issue(ValidationSeverity.WARNING, path,
                                f"Environment variable ${var_name} not set",
                                match.group(0), f"Set environment variable {var_name}")
                else:
                    self._issue(ValidationSeverity.INFO, path,
                                f"Environment variable ${var_name} not set, using empty string",
                                match.group(0), f"Set environment variable {var_name} or use static value")
                return ""

            return env_value

        return re.sub(pattern, replace_var, value)

    def _validate_core_config(self, config: Dict[str, Any]) -> None:
        """Validate core configuration section."""
        core = config.get("core", {})
        if not isinstance(core, dict):
            self._issue(ValidationSeverity.ERROR, "core", "Core section must be a dictionary",
                        type(core).__name__, "core: { admins: [...] }")
            return

        admins = core.get("admins", [])
        if not isinstance(admins, list):
            self._issue(ValidationSeverity.ERROR, "core.admins", "Admins must be a list",
                        admins, "admins: ['*!*@your.host']")
        elif not admins:
            self._issue(ValidationSeverity.WARNING, "core.admins", "No administrators configured",
                        admins, "Add at least one admin hostmask")
        else:
            for i, admin in enumerate(admins):
                if not isinstance(admin, str) or not admin.strip():
                    self._issue(ValidationSeverity.ERROR, f"core.admins[{i}]",
                                "Admin entries must be non-empty strings", admin,
                                "Use nick!user@host globs")
                elif "!" not in admin or "@" not in admin:
                    self._issue(ValidationSeverity.WARNING, f"core.admins[{i}]",
                                "Admin entry does not look like a hostmask", admin,
                                "nick!user@host, e.g. '*!*@trusted.example.net'")

        debug_mode = core.get("debug_mode_on_startup", False)
        if not isinstance(debug_mode, bool):
            self._issue(ValidationSeverity.ERROR, "core.debug_mode_on_startup",
                        "Debug mode must be boolean", debug_mode, "debug_mode_on_startup: true/false")

        debug_log_file = core.get("debug_log_file", "debug.log")
        if not isinstance(debug_log_file, str) or not debug_log_file.strip():
            self._issue(ValidationSeverity.ERROR, "core.debug_log_file",
                        "Debug log file must be a non-empty string", debug_log_file,
                        "debug_log_file: 'debug.log'")

        password_hash = core.get("super_admin_password_hash", "")
        if password_hash and (not isinstance(password_hash, str) or not password_hash.startswith("$2")):
            self._issue(ValidationSeverity.ERROR, "core.super_admin_password_hash",
                        "Super admin password hash must be a bcrypt hash", "<hidden>",
                        "Generate one with 'python3 generate_password_hash.py'")

        session_hours = core.get("super_admin_session_hours", 1)
        if not isinstance(session_hours, (int, float)) or isinstance(session_hours, bool) or session_hours <= 0:
            self._issue(ValidationSeverity.ERROR, "core.super_admin_session_hours",
                        "Session length must be a positive number", session_hours,
                        "super_admin_session_hours: 1")

    def _validate_database_config(self, config: Dict[str, Any]) -> None:
        """The roster database is the only required setting."""
        database = config.get("database", {})
        path = database.get("path") if isinstance(database, dict) else None
        if not path or not isinstance(path, str) or not path.strip():
            self._issue(ValidationSeverity.ERROR, "database.path",
                        "Database path must be a non-empty string", path,
                        "path: 'config/castellan.db'")

    def _validate_connection_config(self, config: Dict[str, Any]) -> None:
        conn = config.get("connection", {})
        if not isinstance(conn, dict):
            self._issue(ValidationSeverity.ERROR, "connection", "Connection section must be a dictionary",
                        type(conn).__name__, "connection: { ssl: true }")
            return

        use_ssl = conn.get("ssl")
        if use_ssl is not None and not isinstance(use_ssl, bool):
            self._issue(ValidationSeverity.ERROR, "connection.ssl", "ssl must be boolean",
                        use_ssl, "ssl: true/false (omit to use TLS only on port 6697)")

        for legacy in ("server", "port", "nick", "channel", "main_channel"):
            if legacy in conn:
                self._issue(ValidationSeverity.WARNING, f"connection.{legacy}",
                            "Ignored: the server, nick and channels are read from the database",
                            conn[legacy], "Set it with 'python3 init_db.py'")

    def _validate_squire_config(self, config: Dict[str, Any]) -> None:
        squire = config.get("squire", {})
        if not squire:
            return
        if not isinstance(squire, dict):
            self._issue(ValidationSeverity.ERROR, "squire", "Squire section must be a dictionary",
                        type(squire).__name__, "squire: { scan_interval_minutes: 10 }")
            return

        interval = squire.get("scan_interval_minutes", 10)
        if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval < 0:
            self._issue(ValidationSeverity.ERROR, "squire.scan_interval_minutes",
                        "Must be a number of minutes, 0 to disable", interval,
                        "scan_interval_minutes: 10")

        for key, default in (("admin_mode", "o"), ("default_friend_mode", "v")):
            value = squire.get(key, default)
            if not isinstance(value, str) or not re.fullmatch(r"\+?[A-Za-z]", value):
                self._issue(ValidationSeverity.ERROR, f"squire.{key}",
                            "Must be a single channel mode letter", value, f"{key}: '{default}'")

    def _validate_plugin_sections(self, config: Dict[str, Any]) -> None:
        for section_name, section_config in config.items():
            if section_name in KNOWN_SECTIONS:
                continue
            if not isinstance(section_config, dict):
                self._issue(ValidationSeverity.WARNING, section_name,
                            "Plugin configuration must be a dictionary",
                            type(section_config).__name__, f"{section_name}: {{ setting: value }}")

    def print_validation_report(self) -> None:
        """Print a human-readable validation report."""
        if not self.issues:
            print("✅ Configuration validation passed with no issues!")
            return

        errors = [i for i in self.issues if i.severity == ValidationSeverity.ERROR]
        warnings = [i for i in self.issues if i.severity == ValidationSeverity.WARNING]
        infos = [i for i in self.issues if i.severity == ValidationSeverity.INFO]

        print(f"\n🔍 **Configuration Validation Report**")
        print("=" * 50)

        if errors:
            print(f"\n❌ **CRITICAL ERRORS ({len(errors)})**:")
            print("These issues must be fixed before the bot can start:")
            for issue in errors:
                print(f"  • {issue.path}: {issue.message}")
                print(f"    Current: {issue.current_value}")
                print(f"    Expected: {issue.expected}")

        if warnings:
            print(f"\n⚠️ **WARNINGS ({len(warnings)})**:")
            print("These issues should be fixed but won't prevent startup:")
            for issue in warnings:
                print(f"  • {issue.path}: {issue.message}")
                if issue.current_value is not None:
                    print(f"    Current: {issue.current_value}")
                print(f"    Expected: {issue.expected}")

        if infos:
            print(f"\nℹ️ **INFO ({len(infos)})**:")
            print("Informational messages:")
            for issue in infos:
                print(f"  • {issue.path}: {issue.message}")

        print("\n" + "=" * 50)


def load_and_validate_config(config_path: Path, logger: Optional[logging.Logger] = None) -> Tuple[Optional[Dict[str, Any]], bool]:
    """
    Convenience function to load and validate configuration.

    Returns:
        Tuple of (config_dict, success)
        success is False if critical errors were found
    """
    validator = ConfigValidator(config_path, logger)
    config, issues = validator.validate_and_load()

    validator.print_validation_report()

    success = config is not None
    return config, success


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Validate castellan bot configuration")
    parser.add_argument("config", nargs="?", default="config/config.yaml",
                        help="Path to configuration file (default: config/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable verbose logging")

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format='%(levelname)s: %(message)s')

    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = Path(__file__).parent / config_path

    config, success = load_and_validate_config(config_path)

    if not success:
        sys.exit(1)
    else:
        print("\n🎉 Configuration is valid and ready to use!")
