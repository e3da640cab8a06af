import logging
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from app.config.settings import RATE_LIMIT_STORAGE_URI

# memory:// serve para um processo só; com vários workers use redis://
_storage = storage_from_string(RATE_LIMIT_STORAGE_URI)
_limiter = FixedWindowRateLimiter(_storage)


def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Janela fixa por chave. Devolve True se a chamada está liberada,
    False se o limite da janela atual já foi atingido.
    """
    item = RateLimitItemPerSecond(limit, window_seconds)
    if _limiter.hit(item, key):
        return True
    logging.warning(f"Rate limit exceeded for {key}")
    return False


def reset_rate_limits() -> None:
    _storage.reset()
