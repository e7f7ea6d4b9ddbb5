"""
Bounded calls to external collaborators.
Every data store call goes through `bounded` so a slow store surfaces as a
DataAccessError instead of stalling the request.
"""
import asyncio
from typing import Awaitable, TypeVar

from app.core.exceptions import DataAccessError

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout_ms: int, operation: str) -> T:
    """
    Await a data store call with a timeout.

    Args:
        awaitable: The pending store call
        timeout_ms: Budget in milliseconds
        operation: Name used in the raised error

    Raises:
        DataAccessError: On timeout or any store failure
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise DataAccessError(operation, f"timed out after {timeout_ms}ms") from e
    except DataAccessError:
        raise
    except Exception as e:
        raise DataAccessError(operation, str(e) or type(e).__name__) from e
