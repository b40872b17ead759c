"""
Directory gateway interface.

Defines the capability interface every directory backend implements, along
with the error taxonomy the reconciler relies on. The live implementation is
in :mod:`ldap_enforcer.ldap_client`; the in-memory recording implementation
used for tests and dry runs is in :mod:`ldap_enforcer.recording`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ldap3 import BASE, LEVEL, SUBTREE

__all__ = [
    'BASE', 'LEVEL', 'SUBTREE',
    'DirectoryError', 'TransportError', 'AuthenticationError',
    'NotFoundError', 'EntryExistsError', 'SchemaViolationError',
    'Entry', 'DirectoryGateway',
]


class DirectoryError(Exception):
    """Base exception for directory operation failures."""

    def __init__(self, message: str, dn: Optional[str] = None):
        self.dn = dn
        super().__init__(message)


class TransportError(DirectoryError):
    """The directory is unreachable or the connection broke."""
    pass


class AuthenticationError(TransportError):
    """Binding to the directory was refused."""
    pass


class NotFoundError(DirectoryError):
    """The target entry does not exist."""
    pass


class EntryExistsError(DirectoryError):
    """An entry with the target DN already exists."""
    pass


class SchemaViolationError(DirectoryError):
    """The directory rejected the entry's attributes or object classes."""
    pass


@dataclass(frozen=True)
class Entry:
    """A directory entry as returned by a search."""

    dn: str
    attributes: Dict[str, List[str]] = field(default_factory=dict)


class DirectoryGateway(ABC):
    """
    Capability interface for directory access.

    All operations are synchronous. Implementations raise the DirectoryError
    subclasses above and never leak backend-specific exceptions.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection and authenticate."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        pass

    @abstractmethod
    def exists(self, dn: str) -> bool:
        pass

    @abstractmethod
    def search(self, base: str, search_filter: str = '(objectClass=*)',
               scope: str = LEVEL, attributes: Optional[List[str]] = None) -> List[Entry]:
        """
        Search below ``base``.

        Args:
            base: Search base DN
            search_filter: LDAP filter string
            scope: BASE, LEVEL or SUBTREE
            attributes: Attributes to return, None for all user attributes

        Raises:
            NotFoundError: If the base does not exist
        """
        pass

    def get(self, dn: str, attributes: Optional[List[str]] = None) -> Optional[Entry]:
        """Read a single entry, or None if it does not exist."""
        try:
            entries = self.search(dn, scope=BASE, attributes=attributes)
        except NotFoundError:
            return None
        return entries[0] if entries else None

    @abstractmethod
    def create(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        pass

    @abstractmethod
    def replace(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        """Replace every listed attribute. An empty value list removes the attribute."""
        pass

    @abstractmethod
    def delete(self, dn: str) -> None:
        pass

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
