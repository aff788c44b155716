from functools import wraps
from typing import Callable
from tarevity.cache.layer import cache_layer


def _to_cacheable(value):
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_cacheable(item) for item in value]
    return value


def async_cached(key_builder: Callable[..., str], l2_ttl: int = None):
    """
    Decorator for async functions. key_builder receives same args/kwargs.
    Example:
      @async_cached(lambda user_id, *_, **__: f"notifications:{user_id}")
      async def list_active(user_id, db): ...

    Models (and lists of models) are stored as plain dicts.
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            key = key_builder(*args, **kwargs)

            # loader closure calls the original function
            async def loader():
                value = await fn(*args, **kwargs)
                if value is None:
                    return None
                return _to_cacheable(value)

            return await cache_layer.get(key, loader=loader, l2_ttl=l2_ttl)

        return wrapper

    return decorator


def async_cached_expire(key_builder: Callable[..., str]):
    """Drop the key once the wrapped write has completed."""

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            key = key_builder(*args, **kwargs)
            try:
                return await fn(*args, **kwargs)
            finally:
                await cache_layer.delete(key)

        return wrapper

    return decorator
