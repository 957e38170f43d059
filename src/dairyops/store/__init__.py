"""External data store access."""

from dairyops.store.circuit import CircuitBreaker, CircuitBreakerOpen, CircuitState
from dairyops.store.client import (
    Filter,
    StoreClient,
    StoreError,
    contains_text,
    eq,
    ilike,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitState",
    "Filter",
    "StoreClient",
    "StoreError",
    "contains_text",
    "eq",
    "ilike",
]
