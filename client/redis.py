import redis
import json
import logging
from typing import Any, Dict, Optional
import os


class Client:
    def __init__(self, redis_url: str = None):
        """
        Initialize Redis client for summary and ranked feed caching

        Args:
            redis_url: Redis connection URL (from environment)
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        if not redis_url:
            redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379')

        try:
            self.client = redis.from_url(redis_url, decode_responses=True)
            # Test connection
            self.client.ping()
            self.logger.info("Redis connection established")
        except Exception as e:
            self.logger.error(f"Failed to connect to Redis: {e}")
            raise

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve a cached JSON value

        Args:
            key: Cache key

        Returns:
            Decoded value or None if not found/expired/unreadable
        """
        try:
            data = self.client.get(key)

            if not data:
                self.logger.debug(f"Cache miss for {key}")
                return None

            return json.loads(data)

        except Exception as e:
            self.logger.error(f"Failed to read cache key {key}: {e}")
            return None

    def set_with_ttl(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a JSON value with an expiry

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            json_data = json.dumps(value, default=str)
            result = self.client.set(key, json_data, ex=ttl)
            self.logger.debug(f"Cached {key} for {ttl}s")
            return bool(result)

        except Exception as e:
            self.logger.error(f"Failed to write cache key {key}: {e}")
            return False

    def delete(self, *keys: str) -> int:
        """Delete cache keys, returning how many existed"""
        if not keys:
            return 0
        try:
            result = self.client.delete(*keys)
            self.logger.info(f"Deleted {result} of {len(keys)} cache keys")
            return int(result)
        except Exception as e:
            self.logger.error(f"Failed to delete cache keys {keys}: {e}")
            return 0

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        try:
            info = self.client.info()
            return {
                'connected_clients': info.get('connected_clients', 0),
                'used_memory_human': info.get('used_memory_human', '0B'),
                'total_commands_processed': info.get('total_commands_processed', 0),
                'keyspace_hits': info.get('keyspace_hits', 0),
                'keyspace_misses': info.get('keyspace_misses', 0)
            }
        except Exception as e:
            self.logger.error(f"Failed to get Redis stats: {e}")
            return {}
