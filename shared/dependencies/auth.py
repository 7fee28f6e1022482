"""FastAPI authentication dependency."""

import secrets

from fastapi import Header, HTTPException, Request


async def verify_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    """Compare the X-API-Key header with the key loaded at startup (APP_API_KEY).

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        x_api_key (str | None): The value of the X-API-Key header.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    expected_key: str = request.app.state.api_key
    if not x_api_key or not secrets.compare_digest(x_api_key, expected_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")
