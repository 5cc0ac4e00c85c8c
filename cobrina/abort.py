from fastapi import Request

from .errors import ClientAborted


async def ensure_connected(request: Request) -> None:
    """
    Cooperative cancellation point.

    Queries already sent to the database run to completion; this only stops
    the handler from doing further work once the client is gone.
    """
    if await request.is_disconnected():
        raise ClientAborted()
