"""Call sync or async callables uniformly.

Route handlers, middleware steps, and store methods supplied by an
application may be plain functions or coroutines. Anything that calls
user code goes through ``invoke`` so the check lives in one place::

    result = await invoke(handler, ctx)
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
