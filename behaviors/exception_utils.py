"""
Standardized exception handling utilities for castellan.

This module defines the error taxonomy shared by the store, the configuration
pipeline and the plugins, plus the logging helpers used when an error is
handled rather than propagated.
"""

import traceback
import logging
from typing import Optional, Type, Tuple
from functools import wraps


class CastellanException(Exception):
    """Base exception class for castellan-specific errors."""
    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or "An unexpected error occurred."


# --- Data layer ---

class StoreException(CastellanException):
    """Base class for roster store failures."""
    pass


class StoreUnavailable(StoreException):
    """The backing store could not be reached."""
    pass


class StoreSchemaError(StoreException):
    """A table or column the roster depends on is missing."""
    pass


class StoreWriteError(StoreException):
    """An insert or update against the roster failed."""
    def __init__(self, message: str, user_message: str = "Could not save that to the roster database."):
        super().__init__(message, user_message)


# --- Orchestration ---

class ReloadInProgress(CastellanException):
    """A reload was requested while another one is still running."""
    def __init__(self, message: str = "A reload is already in progress"):
        super().__init__(message, "A reload is already in progress, try again shortly.")


class ConfigurationIncomplete(CastellanException):
    """A bootstrap or reload step could not produce its part of the config."""
    def __init__(self, step: str, message: str):
        super().__init__(f"{step}: {message}")
        self.step = step


class AuthorizationDenied(CastellanException):
    """The issuing user is not an administrator. Never surfaced to the user."""
    pass


def handle_exceptions(
    error_message: str = "An error occurred",
    log_exception: bool = True,
    reraise: bool = False,
    exception_types: Tuple[Type[Exception], ...] = (Exception,)
):
    """
    Decorator for standardized exception handling in plugin methods.

    Args:
        error_message: Internal error message for logging
        log_exception: Whether to log the exception
        reraise: Whether to re-raise the exception after handling
        exception_types: Tuple of exception types to catch
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            self_obj = args[0] if args else None
            try:
                return func(*args, **kwargs)
            except exception_types as e:
                if log_exception:
                    ctx = getattr(self_obj, 'ctx', None) if self_obj else None
                    debug = getattr(ctx, 'debug', None) if ctx else None
                    module_name = getattr(self_obj, 'name', func.__module__) if self_obj else func.__module__
                    if debug is not None:
                        debug.log(f"[{module_name}] {error_message}: {e}")
                        debug.log(f"[{module_name}] Exception details:\n{traceback.format_exc()}")
                    else:
                        logging.error(f"[{module_name}] {error_message}: {e}")
                        logging.debug(f"[{module_name}] Exception details:\n{traceback.format_exc()}")
                if reraise:
                    raise
                return None
        return wrapper
    return decorator


def log_module_event(module_name: str, event: str, details: Optional[dict] = None):
    """
    Standardized logging for module events.

    Args:
        module_name: Name of the module
        event: Description of the event
        details: Additional event details
    """
    details_str = f" - {details}" if details else ""
    logging.info(f"[{module_name}] {event}{details_str}")


def log_security_event(module_name: str, event: str, user: Optional[str] = None, details: Optional[dict] = None):
    """
    Standardized logging for security-related events.

    Args:
        module_name: Name of the module
        event: Description of the security event
        user: User involved in the event (if applicable)
        details: Additional event details
    """
    user_str = f" by {user}" if user else ""
    details_str = f" - {details}" if details else ""
    logging.warning(f"[SECURITY][{module_name}] {event}{user_str}{details_str}")
