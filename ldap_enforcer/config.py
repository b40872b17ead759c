"""
Configuration loading and management for LDAP Enforcer.

This module loads the desired directory state from YAML files, follows their
include graph, applies environment variable and explicit overrides, validates
everything, and produces an immutable Config value.
"""

import os
import shlex
import subprocess
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

import yaml
from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import parse_dn

from ldap_enforcer.graph import find_cycles
from ldap_enforcer.membership import CYCLE_ERROR, CYCLE_POLICIES, CYCLE_TRUNCATE
from ldap_enforcer.model import Account, Group, Locations, ServiceAccount, is_within, normalize_dn

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'ldapenforcer.yaml'
MASK = '****'


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ValidationError(ConfigurationError):
    """Raised when the loaded configuration fails validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))


@dataclass(frozen=True)
class ConnectionSettings:
    """How to reach and authenticate to the directory."""

    uri: str
    bind_dn: str
    password: Optional[str] = None
    password_file: Optional[str] = None
    password_command: Optional[str] = None
    password_command_via_shell: bool = False
    ca_cert_file: Optional[str] = None
    start_tls: bool = False
    verify_ssl: bool = True
    connection_timeout: int = 10
    receive_timeout: int = 10

    def __repr__(self):
        return f"ConnectionSettings(uri={self.uri!r}, bind_dn={self.bind_dn!r})"


@dataclass(frozen=True)
class PollSettings:
    """Timers driving the reconciliation loop, in seconds. 0 disables polling."""

    config_interval: float = 0
    drift_interval: float = 3600


@dataclass(frozen=True)
class Config:
    """A complete, validated configuration snapshot. Replaced wholesale on reload."""

    connection: ConnectionSettings
    locations: Locations
    accounts: Dict[str, Account] = field(default_factory=dict)
    service_accounts: Dict[str, ServiceAccount] = field(default_factory=dict)
    groups: Dict[str, Group] = field(default_factory=dict)
    polling: PollSettings = PollSettings()
    logging: Dict[str, Any] = field(default_factory=dict)
    error_handling: Dict[str, Any] = field(default_factory=dict)
    membership_cycles: str = CYCLE_TRUNCATE
    config_path: Optional[str] = None
    source_files: Tuple[str, ...] = ()

    @property
    def base_dir(self) -> str:
        if self.config_path:
            return os.path.dirname(os.path.abspath(self.config_path))
        return os.getcwd()

    def as_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """Render the effective configuration in the same shape as the YAML input."""
        connection = {
            'uri': self.connection.uri,
            'bind_dn': self.connection.bind_dn,
            'password': self.connection.password,
            'password_file': self.connection.password_file,
            'password_command': self.connection.password_command,
            'password_command_via_shell': self.connection.password_command_via_shell,
            'ca_cert_file': self.connection.ca_cert_file,
            'start_tls': self.connection.start_tls,
            'verify_ssl': self.connection.verify_ssl,
            'connection_timeout': self.connection.connection_timeout,
            'receive_timeout': self.connection.receive_timeout,
        }
        if mask_secrets and connection['password']:
            connection['password'] = MASK
        connection = {key: value for key, value in connection.items() if value is not None}

        def entity(obj, skip=('username', 'name')):
            rendered = {}
            for key, value in obj.__dict__.items():
                if key in skip or value is None or value == ():
                    continue
                rendered[key] = list(value) if isinstance(value, tuple) else value
            return rendered

        return {
            'ldap': connection,
            'locations': {
                'people': self.locations.people,
                'service_accounts': self.locations.service_accounts,
                'groups': self.locations.groups,
            },
            'polling': {
                'config_interval': self.polling.config_interval,
                'drift_interval': self.polling.drift_interval,
            },
            'logging': dict(self.logging),
            'error_handling': dict(self.error_handling),
            'membership_cycles': self.membership_cycles,
            'accounts': {key: entity(value) for key, value in sorted(self.accounts.items())},
            'service_accounts': {key: entity(value) for key, value in sorted(self.service_accounts.items())},
            'groups': {key: entity(value) for key, value in sorted(self.groups.items())},
        }


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    SETTING_SECTIONS = ('ldap', 'locations', 'polling', 'logging', 'error_handling')
    ENTITY_SECTIONS = ('accounts', 'service_accounts', 'groups')
    TOP_LEVEL_KEYS = SETTING_SECTIONS + ENTITY_SECTIONS + ('includes', 'membership_cycles')

    # Environment variables, applied after files and before explicit overrides
    ENV_OVERRIDES = {
        'ldap.uri': 'LDAPENFORCER_URI',
        'ldap.bind_dn': 'LDAPENFORCER_BIND_DN',
        'ldap.password': 'LDAPENFORCER_PASSWORD',
        'ldap.password_file': 'LDAPENFORCER_PASSWORD_FILE',
        'ldap.password_command': 'LDAPENFORCER_PASSWORD_COMMAND',
        'ldap.password_command_via_shell': 'LDAPENFORCER_PASSWORD_COMMAND_VIA_SHELL',
        'ldap.ca_cert_file': 'LDAPENFORCER_CA_CERT_FILE',
        'locations.people': 'LDAPENFORCER_ENFORCED_PEOPLE_OU',
        'locations.service_accounts': 'LDAPENFORCER_ENFORCED_SVCACCT_OU',
        'locations.groups': 'LDAPENFORCER_ENFORCED_GROUP_OU',
        'logging.level': 'LDAPENFORCER_LOG_LEVEL',
        'logging.ldap_level': 'LDAPENFORCER_LDAP_LOG_LEVEL',
        'polling.config_interval': 'LDAPENFORCER_CONFIG_POLL_INTERVAL',
        'polling.drift_interval': 'LDAPENFORCER_DRIFT_INTERVAL',
    }

    BOOLEAN_SETTINGS = {'ldap.password_command_via_shell', 'ldap.start_tls', 'ldap.verify_ssl'}
    NUMERIC_SETTINGS = {'polling.config_interval', 'polling.drift_interval',
                        'ldap.connection_timeout', 'ldap.receive_timeout'}

    ACCOUNT_FIELDS = {'display_name', 'given_name', 'surname', 'mail', 'posix'}
    SERVICE_ACCOUNT_FIELDS = {'display_name', 'given_name', 'description', 'mail', 'posix'}
    GROUP_FIELDS = {'description', 'posix_gid', 'accounts', 'service_accounts', 'groups'}

    def __init__(self, config_path: Optional[str] = None,
                 overrides: Optional[Dict[str, Any]] = None,
                 environ: Optional[Dict[str, str]] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to the main config file. If None, uses the
                LDAPENFORCER_CONFIG env var or 'ldapenforcer.yaml'
            overrides: Dotted setting keys with explicit values (highest precedence)
            environ: Environment to read overrides from, defaults to os.environ
        """
        self.environ = os.environ if environ is None else environ
        self.config_path = config_path or self.environ.get('LDAPENFORCER_CONFIG', DEFAULT_CONFIG_PATH)
        self.overrides = overrides or {}
        self.raw: Dict[str, Any] = {}
        self.loaded_files: List[str] = []
        self._errors: List[str] = []

    def load(self) -> Config:
        """
        Load configuration from the include graph and apply overrides.

        Returns:
            Validated Config

        Raises:
            ConfigurationError: If a file cannot be read or parsed
            ValidationError: If the merged configuration is invalid
        """
        self.raw = {section: {} for section in self.SETTING_SECTIONS + self.ENTITY_SECTIONS}
        self.loaded_files = []
        self._errors = []

        self._load_file(self.config_path, set())
        self._apply_env_overrides()
        self._apply_explicit_overrides()
        self._apply_defaults()
        config = self._build()

        logger.info(f"Configuration loaded successfully from {self.config_path} "
                    f"({len(self.loaded_files)} file(s), {len(config.accounts)} accounts, "
                    f"{len(config.service_accounts)} service accounts, {len(config.groups)} groups)")
        return config

    def _load_file(self, path: str, seen: set):
        """Load one file, merge it, then follow its includes depth-first."""
        real_path = os.path.realpath(path)
        if real_path in seen:
            logger.debug(f"Skipping already loaded config file {real_path}")
            return
        seen.add(real_path)

        try:
            with open(real_path, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {path}: {e}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")

        self.loaded_files.append(real_path)
        logger.debug(f"Loaded config file {real_path}")
        self._merge(data, real_path)

        includes = data.get('includes') or []
        if not isinstance(includes, list):
            raise ConfigurationError(f"'includes' in {path} must be a list")
        base_dir = os.path.dirname(real_path)
        for include in includes:
            if not isinstance(include, str) or not include.strip():
                raise ConfigurationError(f"'includes' in {path} must be a list of file paths, got {include!r}")
            include_path = include if os.path.isabs(include) else os.path.join(base_dir, include)
            try:
                self._load_file(include_path, seen)
            except ConfigurationError as e:
                raise ConfigurationError(f"Failed to load included config {include} from {path}: {e}")

    def _merge(self, data: Dict[str, Any], source: str):
        """Merge a file's content. Later files win for settings and same-key entities."""
        for key in data:
            if key not in self.TOP_LEVEL_KEYS:
                self._errors.append(f"Unknown top-level key '{key}' in {source}")

        for section in self.SETTING_SECTIONS:
            values = data.get(section)
            if values is None:
                continue
            if not isinstance(values, dict):
                self._errors.append(f"Section '{section}' in {source} must be a mapping")
                continue
            for key, value in values.items():
                if value is not None and value != '':
                    self.raw[section][key] = value

        for section in self.ENTITY_SECTIONS:
            entities = data.get(section)
            if entities is None:
                continue
            if not isinstance(entities, dict):
                self._errors.append(f"Section '{section}' in {source} must be a mapping")
                continue
            for key, definition in entities.items():
                self.raw[section][key] = definition if definition is not None else {}

        if data.get('membership_cycles') is not None:
            self.raw['membership_cycles'] = data['membership_cycles']

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = self.environ.get(env_var)
            if env_value:
                self._set_nested_value(self.raw, config_key, self._coerce(config_key, env_value, env_var))
                logger.debug(f"Applied environment override for {config_key}")

    def _apply_explicit_overrides(self):
        """Apply explicit overrides such as command line flags."""
        for config_key, value in self.overrides.items():
            if value is None or value == '':
                continue
            if isinstance(value, str):
                value = self._coerce(config_key, value, config_key)
            self._set_nested_value(self.raw, config_key, value)
            logger.debug(f"Applied explicit override for {config_key}")

    def _coerce(self, config_key: str, value: str, source: str) -> Any:
        if config_key in self.BOOLEAN_SETTINGS:
            return value.strip().lower() in ('1', 'true', 'yes', 'on')
        if config_key in self.NUMERIC_SETTINGS:
            try:
                return float(value) if '.' in value else int(value)
            except ValueError:
                raise ConfigurationError(f"{source} must be a number, got {value!r}")
        return value

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        ldap_defaults = {
            'password_command_via_shell': False,
            'start_tls': False,
            'verify_ssl': True,
            'connection_timeout': 10,
            'receive_timeout': 10,
        }
        for key, value in ldap_defaults.items():
            self.raw['ldap'].setdefault(key, value)

        polling = self.raw['polling']
        polling.setdefault('config_interval', 0)
        polling.setdefault('drift_interval', 3600)
        interval = polling['config_interval']
        if isinstance(interval, (int, float)) and not isinstance(interval, bool) and 0 < interval < 1:
            logger.warning("Minimum config poll interval is 1 second, using 1 second")
            polling['config_interval'] = 1

        logging_defaults = {
            'level': 'INFO',
            'ldap_level': 'WARNING',
            'console_output': True,
            'log_dir': None,
            'rotation': 'daily',
            'retention_days': 7,
        }
        for key, value in logging_defaults.items():
            self.raw['logging'].setdefault(key, value)

        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5,
        }
        for key, value in error_defaults.items():
            self.raw['error_handling'].setdefault(key, value)

        self.raw.setdefault('membership_cycles', CYCLE_TRUNCATE)

    def _build(self) -> Config:
        """Validate the merged raw configuration and build the Config value."""
        errors = list(self._errors)
        base_dir = os.path.dirname(os.path.realpath(self.config_path))

        connection = self._build_connection(errors, base_dir)
        locations = self._build_locations(errors)
        polling = self._build_polling(errors)

        cycle_policy = self.raw['membership_cycles']
        if cycle_policy not in CYCLE_POLICIES:
            errors.append(f"membership_cycles must be one of {', '.join(CYCLE_POLICIES)}, got {cycle_policy!r}")

        accounts = {}
        for key, definition in self.raw['accounts'].items():
            account = self._build_account(key, definition, errors)
            if account:
                accounts[key] = account

        service_accounts = {}
        for key, definition in self.raw['service_accounts'].items():
            service_account = self._build_service_account(key, definition, errors)
            if service_account:
                service_accounts[key] = service_account

        groups = {}
        for key, definition in self.raw['groups'].items():
            group = self._build_group(key, definition, errors)
            if group:
                groups[key] = group

        for section, entities in (('accounts', accounts), ('service_accounts', service_accounts),
                                  ('groups', groups)):
            self._check_case_collisions(section, entities, errors)

        if cycle_policy == CYCLE_ERROR:
            for cycle in find_cycles(groups):
                errors.append(f"groups.{cycle[0]}: nested group cycle {' -> '.join(cycle)}")

        if errors:
            raise ValidationError(errors)

        return Config(
            connection=connection,
            locations=locations,
            accounts=accounts,
            service_accounts=service_accounts,
            groups=groups,
            polling=polling,
            logging=dict(self.raw['logging']),
            error_handling=dict(self.raw['error_handling']),
            membership_cycles=cycle_policy,
            config_path=os.path.abspath(self.config_path),
            source_files=tuple(self.loaded_files),
        )

    def _build_connection(self, errors: List[str], base_dir: str) -> Optional[ConnectionSettings]:
        ldap_config = self.raw['ldap']
        for required in ('uri', 'bind_dn'):
            if not ldap_config.get(required):
                errors.append(f"Missing required LDAP field: ldap.{required}")
        uri = str(ldap_config.get('uri', ''))
        if uri and not uri.lower().startswith(('ldap://', 'ldaps://')):
            errors.append(f"ldap.uri must start with ldap:// or ldaps://, got {uri!r}")
        if not (ldap_config.get('password') or ldap_config.get('password_file')
                or ldap_config.get('password_command')):
            errors.append("One of ldap.password, ldap.password_file or ldap.password_command must be provided")

        def relative(path):
            if path and not os.path.isabs(path):
                return os.path.join(base_dir, path)
            return path

        try:
            return ConnectionSettings(
                uri=uri,
                bind_dn=str(ldap_config.get('bind_dn', '')),
                password=ldap_config.get('password'),
                password_file=relative(ldap_config.get('password_file')),
                password_command=ldap_config.get('password_command'),
                password_command_via_shell=bool(ldap_config['password_command_via_shell']),
                ca_cert_file=relative(ldap_config.get('ca_cert_file')),
                start_tls=bool(ldap_config['start_tls']),
                verify_ssl=bool(ldap_config['verify_ssl']),
                connection_timeout=int(ldap_config['connection_timeout']),
                receive_timeout=int(ldap_config['receive_timeout']),
            )
        except (TypeError, ValueError) as e:
            errors.append(f"Invalid LDAP connection setting: {e}")
            return None

    def _build_locations(self, errors: List[str]) -> Optional[Locations]:
        location_config = self.raw['locations']
        values = {}
        for key in ('people', 'service_accounts', 'groups'):
            dn = location_config.get(key)
            if not dn or not isinstance(dn, str):
                errors.append(f"Missing required location: locations.{key}")
                continue
            try:
                parse_dn(dn, strip=True)
            except LDAPInvalidDnError:
                errors.append(f"locations.{key} is not a valid DN: {dn!r}")
                continue
            values[key] = dn
        if len(values) < 3:
            return None
        if len({normalize_dn(dn) for dn in values.values()}) < 3:
            errors.append("locations.people, locations.service_accounts and locations.groups must be distinct")
        else:
            for key, dn in values.items():
                for other_key, other_dn in values.items():
                    if key != other_key and is_within(dn, other_dn):
                        errors.append(f"locations.{key} must not lie inside locations.{other_key}")
        return Locations(**values)

    def _build_polling(self, errors: List[str]) -> Optional[PollSettings]:
        polling = self.raw['polling']
        result = {}
        for key in ('config_interval', 'drift_interval'):
            value = polling.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                errors.append(f"polling.{key} must be a non-negative number of seconds, got {value!r}")
                continue
            result[key] = value
        if result.get('drift_interval') == 0:
            errors.append("polling.drift_interval must be greater than 0")
        if len(result) < 2:
            return None
        return PollSettings(**result)

    def _check_fields(self, prefix: str, definition: Any, allowed: set, errors: List[str]) -> bool:
        if not isinstance(definition, dict):
            errors.append(f"{prefix}: must be a mapping")
            return False
        for key in sorted(set(definition) - allowed):
            errors.append(f"{prefix}: unknown field '{key}'")
        return True

    def _string(self, prefix: str, definition: Dict, key: str, errors: List[str],
                required: bool = False) -> Optional[str]:
        value = definition.get(key)
        if value is None or value == '':
            if required:
                errors.append(f"{prefix}: missing required field '{key}'")
            return None
        if not isinstance(value, str):
            errors.append(f"{prefix}: '{key}' must be a string")
            return None
        if required and not value.strip():
            errors.append(f"{prefix}: '{key}' must not be blank")
            return None
        return value

    def _posix_pair(self, prefix: str, definition: Dict, errors: List[str]) -> Optional[Tuple[int, int]]:
        value = definition.get('posix')
        if value is None:
            return None
        if (not isinstance(value, list) or len(value) != 2
                or any(isinstance(n, bool) or not isinstance(n, int) or n < 0 for n in value)):
            errors.append(f"{prefix}: 'posix' must be a list of two non-negative integers [uidNumber, gidNumber]")
            return None
        return value[0], value[1]

    def _references(self, prefix: str, definition: Dict, key: str, errors: List[str]) -> Tuple[str, ...]:
        value = definition.get(key) or []
        if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
            errors.append(f"{prefix}: '{key}' must be a list of names")
            return ()
        return tuple(dict.fromkeys(value))

    def _valid_key(self, prefix: str, key: Any, errors: List[str]) -> bool:
        if not isinstance(key, str) or not key.strip():
            errors.append(f"{prefix}: keys must be non-empty strings")
            return False
        return True

    def _check_case_collisions(self, section: str, entities: Dict[str, Any], errors: List[str]):
        """Keys differing only in case name the same directory entry."""
        by_folded: Dict[str, List[str]] = {}
        for key in entities:
            by_folded.setdefault(key.lower(), []).append(key)
        for keys in by_folded.values():
            if len(keys) > 1:
                errors.append(f"{section}: keys {', '.join(sorted(keys))} differ only in case")

    def _build_account(self, key: str, definition: Any, errors: List[str]) -> Optional[Account]:
        prefix = f"accounts.{key}"
        if not self._valid_key(prefix, key, errors):
            return None
        if not self._check_fields(prefix, definition, self.ACCOUNT_FIELDS, errors):
            return None
        count = len(errors)
        account = Account(
            username=key,
            display_name=self._string(prefix, definition, 'display_name', errors, required=True),
            given_name=self._string(prefix, definition, 'given_name', errors),
            surname=self._string(prefix, definition, 'surname', errors),
            mail=self._string(prefix, definition, 'mail', errors),
            posix=self._posix_pair(prefix, definition, errors),
        )
        return account if len(errors) == count else None

    def _build_service_account(self, key: str, definition: Any, errors: List[str]) -> Optional[ServiceAccount]:
        prefix = f"service_accounts.{key}"
        if not self._valid_key(prefix, key, errors):
            return None
        if not self._check_fields(prefix, definition, self.SERVICE_ACCOUNT_FIELDS, errors):
            return None
        count = len(errors)
        service_account = ServiceAccount(
            username=key,
            display_name=self._string(prefix, definition, 'display_name', errors, required=True),
            given_name=self._string(prefix, definition, 'given_name', errors),
            description=self._string(prefix, definition, 'description', errors),
            mail=self._string(prefix, definition, 'mail', errors),
            posix=self._posix_pair(prefix, definition, errors),
        )
        return service_account if len(errors) == count else None

    def _build_group(self, key: str, definition: Any, errors: List[str]) -> Optional[Group]:
        prefix = f"groups.{key}"
        if not self._valid_key(prefix, key, errors):
            return None
        if not self._check_fields(prefix, definition, self.GROUP_FIELDS, errors):
            return None
        count = len(errors)
        posix_gid = definition.get('posix_gid')
        if posix_gid is not None and (isinstance(posix_gid, bool) or not isinstance(posix_gid, int)
                                      or posix_gid < 0):
            errors.append(f"{prefix}: 'posix_gid' must be a non-negative integer")
            posix_gid = None
        group = Group(
            name=key,
            description=self._string(prefix, definition, 'description', errors, required=True),
            posix_gid=posix_gid,
            accounts=self._references(prefix, definition, 'accounts', errors),
            service_accounts=self._references(prefix, definition, 'service_accounts', errors),
            groups=self._references(prefix, definition, 'groups', errors),
        )
        return group if len(errors) == count else None

    def file_modification_timestamps(self) -> Dict[str, Optional[int]]:
        """Modification times of every file read by the last load()."""
        return file_modification_timestamps(self.loaded_files)


def file_modification_timestamps(paths) -> Dict[str, Optional[int]]:
    """
    Map each path to its modification time in nanoseconds, or None if it is gone.

    Args:
        paths: Config file paths (the main file and every include)
    """
    timestamps = {}
    for path in paths:
        try:
            timestamps[path] = os.stat(path).st_mtime_ns
        except OSError:
            timestamps[path] = None
    return timestamps


def resolve_password(connection: ConnectionSettings) -> str:
    """
    Return the bind password from the first configured source.

    Order: literal password, password file, password command.

    Raises:
        ConfigurationError: If the file cannot be read or the command fails
    """
    if connection.password:
        return connection.password

    if connection.password_file:
        try:
            with open(connection.password_file, 'r') as f:
                return f.read().strip()
        except OSError as e:
            raise ConfigurationError(f"Failed to read password file {connection.password_file}: {e}")

    if connection.password_command:
        if connection.password_command_via_shell:
            logger.info("Executing password command via shell (sh -c)")
            args = ['sh', '-c', connection.password_command]
        else:
            try:
                args = shlex.split(connection.password_command)
            except ValueError as e:
                raise ConfigurationError(f"Failed to parse password command: {e}")
            if not args:
                raise ConfigurationError("Empty password command")
            logger.info(f"Executing password command: {args[0]}")

        try:
            completed = subprocess.run(args, stdout=subprocess.PIPE, check=True, text=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise ConfigurationError(f"Failed to execute password command: {e}")
        result = completed.stdout.strip()
        logger.debug(f"Retrieved password from command (length: {len(result)})")
        return result

    return ''


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Config:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file
        overrides: Explicit dotted-key overrides

    Returns:
        Loaded Config
    """
    loader = ConfigLoader(config_path, overrides)
    return loader.load()
