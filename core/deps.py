from typing import Annotated

from fastapi import Header, HTTPException, status

from core.config import settings

# Standard exception for scheduler calls without the shared secret
CRON_SECRET_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Missing or invalid cron secret",
)


# Sweep endpoints are called by the scheduler with no payload, only this header
async def require_cron_secret(
    x_cron_secret: Annotated[str | None, Header(alias="X-Cron-Secret")] = None,
):
    expected = settings.CRON_SECRET

    # No secret configured (local development): endpoints stay open
    if not expected:
        return None

    if x_cron_secret != expected:
        raise CRON_SECRET_EXCEPTION

    return x_cron_secret
