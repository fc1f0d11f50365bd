import logging
import random
import string
import time
import uuid
from typing import Callable, Optional, Set

from repair_errors import AllocationExhausted

logger = logging.getLogger(__name__)

MAX_ALLOCATION_ATTEMPTS = 100

_BASE36 = string.digits + string.ascii_lowercase

TokenFactory = Callable[[int], str]


def _fallback_token(attempt: int) -> str:
    """Timestamp + counter + random suffix, used when no OS entropy source exists"""
    timestamp = int(time.time() * 1000)
    suffix = "".join(random.choice(_BASE36) for _ in range(13))
    return f"{timestamp}_{attempt}_{suffix}"


def default_token(attempt: int) -> str:
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        # os.urandom is unavailable on this platform
        return _fallback_token(attempt)


def allocate_id(
    prefix: str,
    existing_ids: Set[str],
    token_factory: Optional[TokenFactory] = None,
    max_attempts: int = MAX_ALLOCATION_ATTEMPTS,
) -> str:
    """Return an id not in existing_ids and reserve it there"""
    make_token = token_factory or default_token

    for attempt in range(max_attempts):
        candidate = f"{prefix}_{make_token(attempt)}"
        if candidate not in existing_ids:
            existing_ids.add(candidate)
            return candidate

    logger.error("ID allocation exhausted for prefix %s after %d attempts", prefix, max_attempts)
    raise AllocationExhausted(prefix, max_attempts)
