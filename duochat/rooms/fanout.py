"""Best-effort concurrent fan-out."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Tuple, TypeVar

T = TypeVar("T")


async def gather_settled(
    keys: Iterable[str],
    fn: Callable[[str], Awaitable[T]],
) -> Tuple[List[Tuple[str, T]], Dict[str, BaseException]]:
    """Run ``fn(key)`` for every key concurrently and wait for all of them.

    One key's failure never cancels the others.

    Returns:
        (successes as (key, result) pairs in key order, failures by key)
    """
    keys = list(keys)
    results: List[Any] = await asyncio.gather(*(fn(k) for k in keys), return_exceptions=True)
    done: List[Tuple[str, T]] = []
    failed: Dict[str, BaseException] = {}
    for key, result in zip(keys, results):
        if isinstance(result, BaseException):
            failed[key] = result
        else:
            done.append((key, result))
    return done, failed
