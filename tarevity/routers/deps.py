import secrets

from fastapi import Header, HTTPException, status

from tarevity.core.config import SettingsDep


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, set by the authentication gateway in front of the API."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )
    return x_user_id


def cron_request_authorized(authorization: str | None, settings) -> bool:
    """No secret configured means the endpoint is open."""
    if not settings.cron_secret:
        return True
    if not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return False
    return secrets.compare_digest(token.strip(), settings.cron_secret)


async def require_cron_secret(
    settings: SettingsDep, authorization: str | None = Header(default=None)
):
    if not cron_request_authorized(authorization, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access"
        )
