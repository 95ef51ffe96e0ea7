"""
Authentication adapter.

Maps store-level authentication failures to the stable taxonomy callers
can show to end users:

    authenticate: InvalidAuthError / QueryError -> BadTokenError
    signin:       InvalidAuthError / QueryError -> BadCredentialsError

Any other failure propagates unchanged, StoreUnavailableError included, so
callers can tell a locked or unreachable store from a rejected credential.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..errors import BadCredentialsError, BadTokenError, InvalidAuthError, QueryError
from .session import Session

logger = logging.getLogger(__name__)

# Record access method editors sign in with
EDITOR_ACCESS = "sc__editor"


async def authenticate(session: Session, token: str) -> None:
    """Authenticate a session with a bearer token.

    Raises:
        BadTokenError: If the store rejects the token
    """
    try:
        await session.authenticate(token)
    except (InvalidAuthError, QueryError) as e:
        logger.info("Token rejected", extra={"namespace": session.namespace, "reason": e.code})
        raise BadTokenError() from e


async def signin(session: Session, credentials: Mapping[str, Any]) -> str:
    """Sign in an editor and return a bearer token for authenticate().

    Credentials are forwarded to the access method without inspection.

    Raises:
        BadCredentialsError: If the store rejects the credentials
    """
    try:
        return await session.signin_record(
            namespace=session.namespace,
            database=session.database,
            access=EDITOR_ACCESS,
            params=credentials,
        )
    except (InvalidAuthError, QueryError) as e:
        logger.info("Sign-in rejected", extra={"namespace": session.namespace, "reason": e.code})
        raise BadCredentialsError() from e
