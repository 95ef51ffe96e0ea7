"""
Connection factory.

Produces sessions bound to the configured endpoint and namespace/database:

- init(): anonymous session for request serving (published content only)
- init_system(): session signed in as the root principal, for
  administrative and provisioning work only

The root credential always comes from configuration (environment or a
mounted secret file); there is no built-in default.
"""

from __future__ import annotations

import logging

from ..config import ScalarConfig
from ..errors import ConfigurationError
from .session import RootCredential, Session

logger = logging.getLogger(__name__)


class ConnectionFactory:
    """Creates namespace/database scoped sessions.

    Example:
        >>> factory = ConnectionFactory(ScalarConfig.from_env())
        >>> async with await factory.init() as session:
        ...     store = VersionedStore(session)
    """

    def __init__(self, config: ScalarConfig | None = None) -> None:
        self.config = config or ScalarConfig.from_env()

    def _root_credential(self) -> RootCredential | None:
        auth = self.config.auth
        if not auth.root_password:
            return None
        return RootCredential(username=auth.root_username, password=auth.root_password)

    def _session(self) -> Session:
        store = self.config.store
        return Session(
            endpoint=store.endpoint,
            namespace=store.namespace,
            database=store.database,
            token_secret=self.config.auth.token_secret,
            token_ttl_seconds=self.config.auth.token_ttl_seconds,
            root=self._root_credential(),
            wal_mode=store.wal_mode,
            busy_timeout_ms=store.busy_timeout_ms,
        )

    async def init(self) -> Session:
        """Open an unauthenticated session."""
        session = self._session()
        logger.debug(
            "Opened session",
            extra={"namespace": session.namespace, "database": session.database},
        )
        return session

    async def init_system(self) -> Session:
        """Open a session signed in as the root principal.

        Raises:
            ConfigurationError: If no root credential is configured
            InvalidAuthError: If the store rejects the root credential
        """
        credential = self._root_credential()
        if credential is None:
            raise ConfigurationError(
                "SCALAR_ROOT_PASSWORD or SCALAR_ROOT_PASSWORD_FILE is required for system sessions",
                setting="SCALAR_ROOT_PASSWORD",
            )

        session = self._session()
        await session.signin_root(credential.username, credential.password)
        return session
