from __future__ import annotations

import secrets

from contentcron.core.config import Settings

_BEARER_PREFIX = "bearer "


class CronAuthorizationError(RuntimeError):
    pass


def extract_bearer_token(authorization: str | None) -> str | None:
    if authorization is None:
        return None
    raw = authorization.strip()
    if raw[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    return raw[len(_BEARER_PREFIX) :].strip() or None


def authorize_cron_request(settings: Settings, authorization: str | None) -> None:
    """Reject the trigger call unless it carries the configured secret.

    With no secret configured every caller is accepted.
    """
    expected = settings.cron_secret_token
    if expected is None:
        return
    supplied = extract_bearer_token(authorization)
    if supplied is None or not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise CronAuthorizationError("Unauthorized")
