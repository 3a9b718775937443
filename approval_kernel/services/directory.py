"""
StaticApproverDirectory -- in-process role -> identities lookup.

Implements the ``ApproverDirectory`` port from a plain mapping, as loaded
from configuration (see ``approval_config.load_directory``).  Production
deployments may plug in any object with a ``members_of(role)`` method.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from approval_kernel.domain.approval import ApproverIdentity


class StaticApproverDirectory:
    """Directory backed by a fixed list of identities."""

    def __init__(self, members: Iterable[ApproverIdentity] = ()) -> None:
        self._by_role: dict[str, list[ApproverIdentity]] = {}
        for member in members:
            self._by_role.setdefault(member.role, []).append(member)

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Iterable[tuple[str, str] | str]],
    ) -> StaticApproverDirectory:
        """Build from ``{role: [(identity, display_name) | identity, ...]}``."""
        members = []
        for role, entries in mapping.items():
            for entry in entries:
                if isinstance(entry, str):
                    identity, name = entry, entry
                else:
                    identity, name = entry
                members.append(ApproverIdentity(identity=identity, display_name=name, role=role))
        return cls(members)

    def members_of(self, role: str) -> Sequence[ApproverIdentity]:
        return tuple(self._by_role.get(role, ()))

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_role))
