"""Redis key schema for leasehold.

Key formats:
- Lease:  {prefix}:lease:{namespace}:{name}:{group}
- Member: {prefix}:member:{namespace}:{selector}:{identity}

Where:
- prefix: "leasehold" (namespace for a shared Redis)
- namespace: logical deployment namespace
- name: lease resource name
- selector: label grouping the candidates of a membership set
"""

from __future__ import annotations


class LeaseKeys:
    """Key generator following a consistent naming convention."""

    PREFIX = "leasehold"

    @classmethod
    def lease(cls, namespace: str, name: str, group: str) -> str:
        """Key for the lease hash of a group."""
        return f"{cls.PREFIX}:lease:{namespace}:{name}:{group}"

    @classmethod
    def member(cls, namespace: str, selector: str, identity: str) -> str:
        """Key for a member heartbeat."""
        return f"{cls.PREFIX}:member:{namespace}:{selector}:{identity}"

    @classmethod
    def member_pattern(cls, namespace: str, selector: str) -> str:
        """Pattern matching every heartbeat of a membership set.

        Use with Redis SCAN.
        """
        return f"{cls.PREFIX}:member:{namespace}:{selector}:*"

    @classmethod
    def parse_member(cls, key: str) -> str | None:
        """Extract the identity from a member key.

        Returns None if the key doesn't match the expected format.
        Identities may themselves contain colons.
        """
        parts = key.split(":", 4)
        if len(parts) < 5 or parts[0] != cls.PREFIX or parts[1] != "member":
            return None
        return parts[4] or None
