"""
Infrastructure layer - external system integrations.
Keeps the purchase core clean from wire-protocol details.
"""

from .redis_client import get_redis, close_redis, RedisClient
from .thawani_gateway import ThawaniGateway

__all__ = ['get_redis', 'close_redis', 'RedisClient', 'ThawaniGateway']
