"""Credential Store: the persisted session record."""

import structlog

from motorscope.auth.schemas import Identity, StoredSession
from motorscope.storage import SESSION_KEY, KeyValueStore

logger = structlog.get_logger(__name__)


class CredentialStore:
    """
    Thin wrapper over the key-value store holding one ``StoredSession``.

    The record is written as a single key so a save always replaces the whole
    record. Only the session state machine writes here.
    """

    def __init__(self, store: KeyValueStore, key: str = SESSION_KEY) -> None:
        self._store = store
        self._key = key

    async def get(self) -> StoredSession | None:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        return StoredSession.model_validate_json(raw)

    async def set(self, token: str, user: Identity) -> StoredSession:
        record = StoredSession(token=token, user=user)
        await self._store.set(self._key, record.model_dump_json(by_alias=True))
        logger.debug("Session record stored", user_id=user.id)
        return record

    async def clear(self) -> None:
        await self._store.delete(self._key)
        logger.debug("Session record cleared")
