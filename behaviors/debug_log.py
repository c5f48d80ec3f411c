# behaviors/debug_log.py
# Rotating debug log with per-module switches and secret redaction.

import re
import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "castellan_debug"

_SENSITIVE_PATTERNS = [
    (r'(password["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)(["\']?)', r'\1[REDACTED]\3'),
    (r'(nickserv_pw["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)(["\']?)', r'\1[REDACTED]\3'),
    (r'(token["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)(["\']?)', r'\1[REDACTED]\3'),
    (r'(secret["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)(["\']?)', r'\1[REDACTED]\3'),
    # NickServ IDENTIFY lines
    (r'(identify\s+)(\S+)', r'\1[REDACTED]'),
    # Long alphanumeric strings that look like tokens (32+ chars)
    (r'\b([A-Za-z0-9]{32,})\b', r'[REDACTED_TOKEN]'),
]


class DebugLogger:
    """
    Writes `[module] message` lines to a rotating file.

    Lines prefixed with a module tag are written when global debug is on or
    when that module's debug switch is on. Untagged lines follow the global
    switch only.
    """

    def __init__(self, log_file: Optional[Path] = None, debug_mode: bool = False):
        self.debug_mode = debug_mode
        self.module_debug = {}
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(logging.INFO)

        if log_file is not None:
            # 100KB per file, 10 old files kept
            handler = RotatingFileHandler(
                log_file,
                maxBytes=102400,
                backupCount=10,
                encoding='utf-8'
            )
            formatter = logging.Formatter('%(asctime)s - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
            handler.setFormatter(formatter)

            if self.logger.hasHandlers():
                self.logger.handlers.clear()
            self.logger.addHandler(handler)
            self.logger.info(f"[core] Logging initialized. Debug mode is {'ON' if self.debug_mode else 'OFF'}.")

    @staticmethod
    def redact(message: str) -> str:
        """Redact sensitive information from log messages."""
        redacted = message
        for pattern, replacement in _SENSITIVE_PATTERNS:
            redacted = re.sub(pattern, replacement, redacted, flags=re.IGNORECASE)
        return redacted

    def log(self, message: str):
        safe_message = self.redact(message)

        module_match = re.match(r'^\[(\w+)\]', safe_message)
        if module_match:
            if self.debug_mode or self.module_debug.get(module_match.group(1), False):
                self.logger.info(safe_message)
        elif self.debug_mode:
            self.logger.info(safe_message)

    def always(self, message: str):
        """Log regardless of debug switches and echo to stderr. For failures."""
        safe_message = self.redact(message)
        self.logger.warning(safe_message)
        print(safe_message, file=sys.stderr)

    def set_debug_mode(self, status: bool):
        self.debug_mode = status
        self.log(f"[core] Debug mode has been turned {'ON' if status else 'OFF'}.")

    def set_module_debug(self, module_name: str, status: bool):
        self.module_debug[module_name] = status
        self.log(f"[core] Module debug for '{module_name}' has been turned {'ON' if status else 'OFF'}.")
