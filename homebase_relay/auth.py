"""Request gates for human callers and polling devices."""

from __future__ import annotations

import hmac
import logging
import re
from typing import Awaitable, Callable, Mapping, Optional

LOGGER = logging.getLogger(__name__)

PasswordValidator = Callable[[str], Awaitable[bool]]

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def bearer_token(headers: Mapping[str, str]) -> str:
    """Extract the token from an ``Authorization: Bearer`` header, or ``""``."""

    return _BEARER_PREFIX.sub("", headers.get("Authorization", "")).strip()


def _matches(candidate: Optional[str], secret: Optional[str]) -> bool:
    if not candidate or not secret:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), secret.encode("utf-8"))


class DeviceTokenAuth:
    """Checks the shared bearer token presented by polling devices."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("device token cannot be empty")
        self._token = token

    def is_authorized(self, headers: Mapping[str, str]) -> bool:
        return _matches(bearer_token(headers), self._token)


class CommandAuthorizer:
    """Decides whether a human caller may issue a command.

    A caller is accepted when the submitted password or the bearer token equals
    the admin secret, or when the external password validator accepts the
    password. A validator failure counts as a rejection.
    """

    def __init__(
        self,
        admin_secret: Optional[str],
        *,
        password_validator: Optional[PasswordValidator] = None,
    ) -> None:
        self._admin_secret = admin_secret
        self._password_validator = password_validator

    async def is_authorized(
        self, password: Optional[str], headers: Mapping[str, str]
    ) -> bool:
        if _matches(password, self._admin_secret):
            return True
        if _matches(bearer_token(headers), self._admin_secret):
            return True
        if not password or self._password_validator is None:
            return False
        try:
            return bool(await self._password_validator(password))
        except Exception:
            LOGGER.exception("Password validator failed")
            return False
