# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Caller identity carried as request headers.

The backend derives the current user from a fixed set of headers.
:func:`login` writes them, :func:`logout` removes them; neither touches the
network.
"""

from __future__ import annotations

import zlib
from collections.abc import MutableMapping
from dataclasses import dataclass

__all__ = [
    "IDENTITY_HEADERS",
    "USER_EMAIL_HEADER",
    "USER_FEDERATED_IDENTITY_HEADER",
    "USER_FEDERATED_PROVIDER_HEADER",
    "USER_ID_HEADER",
    "USER_IS_ADMIN_HEADER",
    "User",
    "derive_user_id",
    "login",
    "logout",
]

USER_EMAIL_HEADER = "X-AppEngine-User-Email"
USER_ID_HEADER = "X-AppEngine-User-Id"
USER_FEDERATED_IDENTITY_HEADER = "X-AppEngine-User-Federated-Identity"
USER_FEDERATED_PROVIDER_HEADER = "X-AppEngine-User-Federated-Provider"
USER_IS_ADMIN_HEADER = "X-AppEngine-User-Is-Admin"

IDENTITY_HEADERS: tuple[str, ...] = (
    USER_EMAIL_HEADER,
    USER_ID_HEADER,
    USER_IS_ADMIN_HEADER,
    USER_FEDERATED_IDENTITY_HEADER,
    USER_FEDERATED_PROVIDER_HEADER,
)


@dataclass(frozen=True)
class User:
    """A signed-in user.

    Attributes:
        email: Email address; also used as the federated identity.
        user_id: Stable id.  Derived from *email* when empty.
        federated_provider: Identity provider URL, if any.
        admin: Whether the user is an application administrator.

    """

    email: str
    user_id: str = ""
    federated_provider: str = ""
    admin: bool = False


def derive_user_id(email: str) -> str:
    """Return the CRC-32 (IEEE) of *email* as a decimal string."""
    return str(zlib.crc32(email.encode()))


def login(headers: MutableMapping[str, str], user: User) -> None:
    """Make *headers* identify *user*."""
    headers[USER_EMAIL_HEADER] = user.email
    headers[USER_ID_HEADER] = user.user_id or derive_user_id(user.email)
    headers[USER_FEDERATED_IDENTITY_HEADER] = user.email
    headers[USER_FEDERATED_PROVIDER_HEADER] = user.federated_provider
    headers[USER_IS_ADMIN_HEADER] = "1" if user.admin else "0"


def logout(headers: MutableMapping[str, str]) -> None:
    """Remove every identity header from *headers*."""
    for name in IDENTITY_HEADERS:
        headers.pop(name, None)
