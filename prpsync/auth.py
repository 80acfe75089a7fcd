"""
Access control for privileged tool operations.

The current username is supplied by the host's identity provider; this
module only decides whether that user may run mutating operations.
"""

from collections.abc import Iterable
from typing import Protocol, runtime_checkable


@runtime_checkable
class Authorizer(Protocol):
    """Policy deciding who may perform mutating operations."""

    def is_privileged(self, username: str) -> bool: ...


class AllowListAuthorizer:
    """Static allow-list of privileged usernames (case-sensitive)."""

    def __init__(self, usernames: Iterable[str]):
        self._allowed = frozenset(usernames)

    def is_privileged(self, username: str) -> bool:
        return bool(username) and username in self._allowed

    @property
    def allowed(self) -> frozenset[str]:
        return self._allowed
