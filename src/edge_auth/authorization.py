"""Group membership checks on verified ID-token claims.

The only authorization the edge performs is an optional "user must belong to
group X" rule. Claim extraction is fail-closed: malformed or unexpected claim
formats yield an empty set, which denies access.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import cast

from .errors import GroupAuthorizationError
from .protocols import Claims


@dataclass(frozen=True, slots=True)
class ClaimsMapping:
    """Where group membership lives in the ID token.

    Attributes:
        groups_claim: The claim key containing the user's groups. Cognito
            uses ``cognito:groups``.
    """

    groups_claim: str = "cognito:groups"


class ClaimAccess:
    """Extracts and normalizes group data from JWT claims.

    Examples:
        >>> accessor = ClaimAccess(ClaimsMapping())
        >>> accessor.groups({"cognito:groups": ["admins", "users"]})
        frozenset({'admins', 'users'})
    """

    def __init__(self, mapping: ClaimsMapping) -> None:
        self._m = mapping

    def groups(self, claims: Claims) -> frozenset[str]:
        """Extract groups from JWT claims.

        Supports a list of strings, a space-separated string, or a single
        string. Non-string items are ignored; anything else yields an empty set.
        """
        raw = claims.get(self._m.groups_claim, [])

        if isinstance(raw, str):
            return frozenset(raw.split())

        if isinstance(raw, (list, tuple, set, frozenset)):
            raw_seq = cast(Sequence[object], raw)
            return frozenset(item for item in raw_seq if isinstance(item, str))

        return frozenset()


class GroupAuthorizer:
    """Enforces membership of a single required group.

    With no required group configured every authenticated user passes.

    Examples:
        >>> authorizer = GroupAuthorizer(ClaimAccess(ClaimsMapping()), "admins")
        >>> authorizer.authorize({"cognito:groups": ["admins"]})  # Succeeds
        >>> authorizer.authorize({"cognito:groups": ["users"]})
        Traceback (most recent call last):
        ...
        edge_auth.errors.GroupAuthorizationError: ...
    """

    def __init__(self, claims: ClaimAccess, required_group: str | None) -> None:
        self._claims = claims
        self._required = required_group

    @property
    def required_group(self) -> str | None:
        return self._required

    def authorize(self, claims: Claims) -> None:
        """Raise ``GroupAuthorizationError`` unless the user is in the required group."""
        if not self._required:
            return
        if self._required not in self._claims.groups(claims):
            raise GroupAuthorizationError(
                f"User is not a member of the required group {self._required!r}"
            )
