"""
LDAP gateway for reading and writing managed directory entries.

This module implements the directory gateway on top of ldap3: it connects
over LDAPS or StartTLS, binds with retry, and maps LDAP result codes onto the
gateway error taxonomy.
"""

import logging
import ssl
import time
from typing import Any, Callable, Dict, List, Optional

from ldap3 import (
    ALL_ATTRIBUTES,
    BASE,
    LEVEL,
    MODIFY_REPLACE,
    NO_ATTRIBUTES,
    NONE,
    Connection,
    Server,
    Tls,
)
from ldap3.core.exceptions import LDAPCommunicationError, LDAPException

from ldap_enforcer.config import Config, ConnectionSettings, resolve_password
from ldap_enforcer.gateway import (
    AuthenticationError,
    DirectoryError,
    DirectoryGateway,
    Entry,
    EntryExistsError,
    NotFoundError,
    SchemaViolationError,
    TransportError,
)
from ldap_enforcer.logging_setup import audit_logger
from ldap_enforcer.retry import (
    MaxRetriesExceeded,
    create_retry_callback,
    is_retryable_error,
    retry_call,
    retry_settings,
)

logger = logging.getLogger(__name__)

# LDAP result codes (RFC 4511)
RESULT_SUCCESS = 0
RESULT_NO_SUCH_OBJECT = 32
RESULT_INVALID_CREDENTIALS = 49
RESULT_ENTRY_ALREADY_EXISTS = 68

SCHEMA_RESULT_CODES = {
    17,  # undefinedAttributeType
    18,  # inappropriateMatching
    19,  # constraintViolation
    20,  # attributeOrValueExists
    21,  # invalidAttributeSyntax
    64,  # namingViolation
    65,  # objectClassViolation
    67,  # notAllowedOnRDN
    69,  # objectClassModsProhibited
}
TRANSPORT_RESULT_CODES = {
    51,  # busy
    52,  # unavailable
    81,  # serverDown
    85,  # timeout
    91,  # connectError
}
AUTHENTICATION_RESULT_CODES = {
    RESULT_INVALID_CREDENTIALS,
    48,  # inappropriateAuthentication
    50,  # insufficientAccessRights
}

PAGED_RESULTS_CONTROL = '1.2.840.113556.1.4.319'


def _string_value(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


def _normalize_attributes(attributes: Dict[str, Any]) -> Dict[str, List[str]]:
    """Turn ldap3's mix of scalar and list values into lists of strings."""
    normalized = {}
    for name, value in (attributes or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            normalized[name] = [_string_value(v) for v in value]
        else:
            normalized[name] = [_string_value(value)]
    return normalized


class LDAPGateway(DirectoryGateway):
    """
    Directory gateway for a live LDAP server.

    A connection is opened by connect() and closed by close(); the reconciler
    uses one gateway per pass.
    """

    def __init__(self, settings: ConnectionSettings,
                 error_handling: Optional[Dict[str, Any]] = None,
                 page_size: int = 500,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the gateway.

        Args:
            settings: Connection settings from the configuration
            error_handling: error_handling section (max_retries, retry_wait_seconds)
            page_size: Page size for searches
            sleep: Function used to wait between bind attempts
        """
        self.settings = settings
        self.uri = settings.uri
        self.use_ssl = settings.uri.lower().startswith('ldaps://')
        self.start_tls = settings.start_tls
        self.page_size = page_size
        self.retry = retry_settings(error_handling or {})
        self._sleep = sleep

        self.server = None
        self.connection = None

    @classmethod
    def from_config(cls, config: Config) -> 'LDAPGateway':
        return cls(config.connection, config.error_handling)

    def connect(self) -> None:
        """
        Connect and bind, retrying transient failures.

        Raises:
            AuthenticationError: If the server rejects the credentials
            TransportError: If the server cannot be reached after all retries
            ConfigurationError: If the bind password cannot be resolved
        """
        password = resolve_password(self.settings)

        try:
            self.server = Server(
                self.uri,
                use_ssl=self.use_ssl,
                tls=self._create_tls_config(),
                get_info=NONE,
                connect_timeout=self.settings.connection_timeout
            )
            logger.debug(f"Created LDAP server object for {self.uri} "
                         f"(SSL: {self.use_ssl}, StartTLS: {self.start_tls})")
        except LDAPException as e:
            raise TransportError(f"Failed to create LDAP server: {e}")

        try:
            self.connection = retry_call(
                self._open_and_bind,
                args=(password,),
                exceptions=(TransportError,),
                retry_if=is_retryable_error,
                on_retry=create_retry_callback(f"LDAP bind to {self.uri}"),
                sleep=self._sleep,
                **self.retry
            )
        except AuthenticationError:
            audit_logger.log_bind(self.uri, self.settings.bind_dn, False)
            raise
        except MaxRetriesExceeded as e:
            audit_logger.log_bind(self.uri, self.settings.bind_dn, False)
            raise TransportError(f"Failed to connect to LDAP after {e.attempts} attempts: "
                                 f"{e.last_exception}") from e.last_exception

        audit_logger.log_bind(self.uri, self.settings.bind_dn, True)
        logger.info(f"Successfully connected and bound to LDAP server {self.uri}")

    def _open_and_bind(self, password: str) -> Connection:
        connection = Connection(
            self.server,
            user=self.settings.bind_dn,
            password=password,
            auto_bind=False,
            receive_timeout=self.settings.receive_timeout,
            raise_exceptions=False
        )
        try:
            connection.open()

            if self.start_tls and not self.use_ssl:
                if not connection.start_tls():
                    raise TransportError(f"Failed to start TLS: {connection.result}")
                logger.debug("StartTLS negotiation successful")

            if not connection.bind():
                result = connection.result or {}
                message = f"Bind as {self.settings.bind_dn} failed: {result.get('description', result)}"
                if result.get('result') in AUTHENTICATION_RESULT_CODES:
                    raise AuthenticationError(message)
                raise TransportError(message)

        except LDAPException as e:
            self._discard(connection)
            raise TransportError(f"LDAP connection to {self.uri} failed: {e}")
        except TransportError:
            self._discard(connection)
            raise

        return connection

    def _discard(self, connection: Connection):
        try:
            connection.unbind()
        except LDAPException as e:
            logger.debug(f"Ignoring error while discarding LDAP connection: {e}")

    def _create_tls_config(self) -> Optional[Tls]:
        """
        Create TLS configuration for LDAP connection.

        Returns:
            Tls configuration object or None if not needed
        """
        if not (self.use_ssl or self.start_tls):
            return None

        tls_config = {}

        if not self.settings.verify_ssl:
            tls_config['validate'] = ssl.CERT_NONE
            logger.warning("SSL certificate verification disabled")
        else:
            tls_config['validate'] = ssl.CERT_REQUIRED

        if self.settings.ca_cert_file:
            tls_config['ca_certs_file'] = self.settings.ca_cert_file
            logger.debug(f"Using CA certificate file: {self.settings.ca_cert_file}")

        try:
            return Tls(**tls_config)
        except LDAPException as e:
            raise TransportError(f"Failed to create TLS configuration: {e}")

    def close(self) -> None:
        """Close LDAP connection."""
        if self.connection is None:
            return
        try:
            self.connection.unbind()
            logger.debug("LDAP connection closed")
        except LDAPException as e:
            logger.warning(f"Error closing LDAP connection: {e}")
        finally:
            self.connection = None

    def _require_connection(self) -> Connection:
        if self.connection is None:
            raise TransportError("Not connected to LDAP server")
        return self.connection

    def _raise_for_result(self, operation: str, dn: str):
        """Map a failed LDAP result onto the gateway error taxonomy."""
        result = self.connection.result or {}
        code = result.get('result', RESULT_SUCCESS)
        if code == RESULT_SUCCESS:
            return

        message = f"LDAP {operation} failed for {dn}: {result.get('description', 'error')} ({code})"
        if result.get('message'):
            message += f" {result['message']}"

        if code == RESULT_NO_SUCH_OBJECT:
            raise NotFoundError(message, dn=dn)
        if code == RESULT_ENTRY_ALREADY_EXISTS:
            raise EntryExistsError(message, dn=dn)
        if code in SCHEMA_RESULT_CODES:
            raise SchemaViolationError(message, dn=dn)
        if code in AUTHENTICATION_RESULT_CODES:
            raise AuthenticationError(message, dn=dn)
        if code in TRANSPORT_RESULT_CODES:
            raise TransportError(message, dn=dn)
        raise DirectoryError(message, dn=dn)

    def _execute(self, operation: str, dn: str, call: Callable[[Connection], Any]) -> Any:
        connection = self._require_connection()
        try:
            outcome = call(connection)
        except LDAPCommunicationError as e:
            raise TransportError(f"LDAP {operation} failed for {dn}: {e}", dn=dn)
        except LDAPException as e:
            raise DirectoryError(f"LDAP {operation} failed for {dn}: {e}", dn=dn)
        self._raise_for_result(operation, dn)
        return outcome

    def search(self, base: str, search_filter: str = '(objectClass=*)',
               scope: str = LEVEL, attributes: Optional[List[str]] = None) -> List[Entry]:
        """
        Search below a base DN, following paged results.

        Raises:
            NotFoundError: If the base does not exist
        """
        wanted = attributes if attributes else ALL_ATTRIBUTES
        entries = []
        cookie = None
        page_count = 0

        while True:
            self._execute('search', base, lambda conn: conn.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=scope,
                attributes=wanted,
                paged_size=self.page_size if scope != BASE else None,
                paged_cookie=cookie
            ))
            page_count += 1
            for item in self.connection.response or []:
                if item.get('type') != 'searchResEntry':
                    continue
                entries.append(Entry(item['dn'], _normalize_attributes(item.get('attributes'))))

            controls = (self.connection.result or {}).get('controls') or {}
            cookie = controls.get(PAGED_RESULTS_CONTROL, {}).get('value', {}).get('cookie')
            if not cookie:
                break

        logger.debug(f"Search of {base} returned {len(entries)} entries across {page_count} page(s)")
        return entries

    def exists(self, dn: str) -> bool:
        try:
            return bool(self.search(dn, scope=BASE, attributes=[NO_ATTRIBUTES]))
        except NotFoundError:
            return False

    def create(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        values = {name: list(value) for name, value in attributes.items() if value}
        self._execute('add', dn, lambda conn: conn.add(dn, attributes=values))
        logger.debug(f"Added {dn}")

    def replace(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        changes = {name: [(MODIFY_REPLACE, list(value))] for name, value in attributes.items()}
        self._execute('modify', dn, lambda conn: conn.modify(dn, changes))
        logger.debug(f"Replaced {len(changes)} attributes of {dn}")

    def delete(self, dn: str) -> None:
        self._execute('delete', dn, lambda conn: conn.delete(dn))
        logger.debug(f"Deleted {dn}")
