"""
Logging setup and configuration for LDAP Enforcer.

This module provides centralized logging configuration: console output for
containers and service managers, optional file logging with rotation and
retention, a separate level for the ldap3 library, and an audit trail of
every directory mutation.
"""

import os
import re
import sys
import glob
import time
import logging
import logging.handlers
from typing import Dict, Any, List, Optional

from ldap3.utils.log import BASIC, ERROR as LDAP3_ERROR_DETAIL, set_library_log_detail_level

LOG_FILE_NAME = 'ldapenforcer.log'
LDAP3_LOGGER_NAME = 'ldap3'
AUDIT_LOGGER_NAME = 'ldap_enforcer.audit'
ROTATING_MODES = ('daily', 'midnight')


def _level(name: Optional[str], default: int = logging.INFO) -> int:
    if not name:
        return default
    return getattr(logging, str(name).upper(), default)


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'bind_password', 'userPassword', 'password_command',
        'secret', 'token', 'credential', 'pwd', 'pass'
    ]

    _ASSIGNMENT_PATTERNS = [
        re.compile(rf'({keyword}\s*[=:]\s*)[^\s,}}\]]+(\s|,|$)', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ]
    _QUOTED_PATTERNS = [
        re.compile(rf'([\'"]{keyword}[\'"]\s*:\s*[\'"])[^\'"]*([\'"])', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ]

    def filter(self, record):
        """Filter out sensitive data from log records."""
        if record.args:
            try:
                record.msg = record.getMessage()
            except (TypeError, ValueError):
                record.msg = str(record.msg)
            record.args = None

        msg = str(record.msg)

        # "key": "value" in dict or JSON renderings
        for pattern in self._QUOTED_PATTERNS:
            msg = pattern.sub(r'\1****\2', msg)

        # key=value and key: value
        for pattern in self._ASSIGNMENT_PATTERNS:
            msg = pattern.sub(r'\1****\2', msg)

        record.msg = msg
        return True


class LoggingManager:
    """
    Manages logging configuration for LDAP Enforcer.

    Console output is on by default; file logging with rotation and
    retention is enabled by setting log_dir.
    """

    def __init__(self):
        self.log_dir = None
        self.retention_days = 7
        self.console_handler = None
        self.file_handler = None

    def setup_logging(self, config: Optional[Dict[str, Any]]) -> None:
        """
        Install handlers on the root logger, replacing any from an earlier call.

        Recognised keys: level, console_level, console_output, log_dir,
        rotation, retention_days and ldap_level.
        """
        logging_config = config or {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = logging_config.get('console_level') or log_level

        root_logger = logging.getLogger()
        root_logger.setLevel(_level(log_level))

        # Replace handlers from any previous setup
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()
        self.console_handler = None
        self.file_handler = None

        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        if self.log_dir:
            self._ensure_log_directory()
            self.file_handler = self._create_file_handler(rotation)
            self.file_handler.setLevel(_level(log_level))
            self.file_handler.setFormatter(file_formatter)
            self.file_handler.addFilter(sensitive_filter)
            root_logger.addHandler(self.file_handler)
            self._cleanup_old_logs()

        if console_enabled:
            self.console_handler = logging.StreamHandler()
            self.console_handler.setLevel(_level(console_level))
            self.console_handler.setFormatter(console_formatter)
            self.console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(self.console_handler)

        self._apply_ldap_level(logging_config.get('ldap_level', 'WARNING'))

        destination = self.file_handler.baseFilename if self.file_handler else 'console only'
        logging.getLogger(__name__).info(f"Logging at {log_level} to {destination} "
                                         f"(console={console_enabled}, retention={self.retention_days}d)")

    def update_levels(self, config: Optional[Dict[str, Any]]) -> None:
        """
        Re-apply log levels after a configuration reload.

        Handlers and files are left as they are.
        """
        logging_config = config if config else {}
        log_level = _level(logging_config.get('level', 'INFO'))

        logging.getLogger().setLevel(log_level)
        if self.file_handler is not None:
            self.file_handler.setLevel(log_level)
        if self.console_handler is not None:
            self.console_handler.setLevel(_level(logging_config.get('console_level'), log_level))
        self._apply_ldap_level(logging_config.get('ldap_level', 'WARNING'))

        logging.getLogger(__name__).debug(f"Log levels updated: level={logging.getLevelName(log_level)}")

    def _apply_ldap_level(self, ldap_level: Optional[str]) -> None:
        """Set the ldap3 library logger level separately from the main one."""
        level = _level(ldap_level, logging.WARNING)
        logging.getLogger(LDAP3_LOGGER_NAME).setLevel(level)
        set_library_log_detail_level(BASIC if level <= logging.DEBUG else LDAP3_ERROR_DETAIL)

    def _ensure_log_directory(self) -> None:
        """Create log_dir, or log to the working directory if that is impossible."""
        if not self.log_dir or os.path.isdir(self.log_dir):
            return
        try:
            os.makedirs(self.log_dir, exist_ok=True)
        except OSError as e:
            # Logging is not set up yet, so report on stderr directly
            print(f"Cannot create log directory {self.log_dir} ({e}); writing {LOG_FILE_NAME} to the "
                  f"working directory instead", file=sys.stderr)
            self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Build the handler for log_dir/ldapenforcer.log.

        'daily' and 'midnight' rotate at midnight keeping retention_days
        dated files; anything else appends to a single file.
        """
        path = os.path.join(self.log_dir, LOG_FILE_NAME)

        if str(rotation).lower() not in ROTATING_MODES:
            return logging.FileHandler(path, encoding='utf-8')

        rotating = logging.handlers.TimedRotatingFileHandler(
            filename=path,
            when='midnight',
            backupCount=self.retention_days,
            encoding='utf-8'
        )
        rotating.suffix = '%Y-%m-%d'
        return rotating

    def _cleanup_old_logs(self) -> None:
        """Delete rotated files last modified more than retention_days ago."""
        if not self.log_dir or self.retention_days <= 0:
            return

        oldest_kept = time.time() - self.retention_days * 86400
        active = os.path.join(self.log_dir, LOG_FILE_NAME)
        for path in self.get_log_files():
            if path == active:
                continue
            try:
                if os.path.getmtime(path) < oldest_kept:
                    os.remove(path)
                    logging.getLogger(__name__).info(f"Removed expired log file {path}")
            except OSError as e:
                logging.getLogger(__name__).warning(f"Could not remove expired log file {path}: {e}")

    def get_log_files(self) -> List[str]:
        """The active log file and its rotated copies, sorted by name."""
        if not self.log_dir:
            return []
        return sorted(glob.glob(os.path.join(self.log_dir, LOG_FILE_NAME + '*')))


_logging_manager = LoggingManager()


def setup_logging(config: Optional[Dict[str, Any]]) -> None:
    """Configure process-wide logging from the ``logging`` config section."""
    _logging_manager.setup_logging(config)


def update_log_levels(config: Optional[Dict[str, Any]]) -> None:
    """Re-apply log levels from a reloaded logging configuration."""
    _logging_manager.update_levels(config)


class DirectoryAuditLogger:
    """Audit trail of directory mutations and binds."""

    def __init__(self):
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)

    def _outcome(self, success: bool) -> str:
        return "SUCCESS" if success else "FAILURE"

    def log_change(self, action: str, kind: str, dn: str, success: bool, dry_run: bool = False):
        """Log a create, replace or delete issued against the directory."""
        prefix = "[dry-run] " if dry_run else ""
        self.logger.info(f"{prefix}Directory change {self._outcome(success)}: {action} {kind} dn={dn}")

    def log_bind(self, uri: str, bind_dn: str, success: bool):
        self.logger.info(f"Bind {self._outcome(success)}: {uri} bind_dn={bind_dn}")

    def log_configuration_access(self, config_file: str):
        self.logger.info(f"Read configuration from {config_file}")


audit_logger = DirectoryAuditLogger()
