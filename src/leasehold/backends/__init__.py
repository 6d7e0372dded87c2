"""Storage backends for leasehold.

Provides the shared Redis client and the key schema used by the Redis
lease gateway and membership provider.
"""

from leasehold.backends.keys import LeaseKeys
from leasehold.backends.redis import close_redis, get_redis, health_check

__all__ = [
    "LeaseKeys",
    "get_redis",
    "close_redis",
    "health_check",
]
