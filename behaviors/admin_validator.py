"""
Centralized admin validation utilities.

Administrators are identified by hostmask globs from config.yaml
(core.admins). Dangerous commands such as reload additionally require a
super admin session when core.super_admin_password_hash is set.
"""

import time
from typing import Dict, List, Optional

import bcrypt

from .exception_utils import (
    AuthorizationDenied,
    log_security_event,
    log_module_event
)
from .hostmask import match_any


class AdminValidator:
    """Centralized admin validation with standardized permission checks."""

    def __init__(self, admin_patterns: Optional[List[str]] = None, password_hash: str = "",
                 session_hours: float = 1):
        """Initialize admin validator.

        Args:
            admin_patterns: Hostmask globs that identify administrators
            password_hash: bcrypt hash guarding super admin sessions
            session_hours: How long a super admin session stays valid
        """
        self.admin_patterns = [p.strip() for p in (admin_patterns or []) if isinstance(p, str) and p.strip()]
        self.password_hash = (password_hash or "").strip()
        self.session_hours = session_hours
        self._sessions: Dict[str, float] = {}

    @classmethod
    def from_settings(cls, settings: dict) -> "AdminValidator":
        core = settings.get("core", {}) or {}
        return cls(
            admin_patterns=core.get("admins", []),
            password_hash=core.get("super_admin_password_hash", ""),
            session_hours=core.get("super_admin_session_hours", 1),
        )

    def is_admin(self, hostmask: Optional[str]) -> bool:
        """Check if a hostmask belongs to an administrator.

        Args:
            hostmask: nick!user@host of the user

        Returns:
            True if user is admin, False otherwise
        """
        if not hostmask:
            return False
        return match_any(hostmask, self.admin_patterns)

    def require_admin(self, hostmask: Optional[str], command: str = "") -> None:
        """Require admin permissions, raise exception if not admin.

        Raises:
            AuthorizationDenied: If user is not admin
        """
        if not self.is_admin(hostmask):
            log_security_event("admin_validator", "unauthorized_access", hostmask,
                               {"command": command} if command else None)
            raise AuthorizationDenied("Insufficient permissions for this command")

    def is_super_admin(self, nick: str, hostmask: Optional[str]) -> bool:
        """
        Check if a user may run super admin commands.

        If no password hash is configured, all regular admins are treated as
        super admins.
        """
        if not self.is_admin(hostmask):
            return False
        if not self.password_hash:
            return True

        expiry = self._sessions.get(nick.lower())
        if expiry is None:
            return False
        if time.time() > expiry:
            del self._sessions[nick.lower()]
            log_module_event("admin_validator", "super_admin_session_expired", {"nick": nick})
            return False
        return True

    def authenticate_super_admin(self, nick: str, hostmask: Optional[str], password: str) -> bool:
        """
        Open a super admin session after checking the bcrypt password.

        Returns:
            True if authentication succeeds, False otherwise
        """
        if not self.is_admin(hostmask):
            log_security_event("admin_validator", "super_admin_auth_not_admin", hostmask)
            return False
        if not self.password_hash:
            return False

        try:
            if not bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8')):
                log_security_event("admin_validator", "super_admin_auth_bad_password", hostmask)
                return False
        except ValueError as e:
            log_security_event("admin_validator", "super_admin_auth_bcrypt_error", hostmask, {"error": str(e)})
            return False

        self._sessions[nick.lower()] = time.time() + (self.session_hours * 3600)
        log_module_event("admin_validator", "super_admin_authenticated", {"nick": nick})
        return True
