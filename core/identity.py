"""Caller identity as supplied by the upstream identity provider.

The service does not authenticate anyone; it trusts the identity it is
handed per request and only makes authorization decisions on it.
"""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    role: Role = Role.MEMBER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
