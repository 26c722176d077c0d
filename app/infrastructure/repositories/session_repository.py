"""
Session Repository
One Session per user; created on first read, never deleted.
"""

from app.domain.models import Session
from app.infrastructure.repositories.base import KVRepository
from app.utils.time import utc_now


class SessionRepository(KVRepository):
    store_type = "session"

    async def get(self, user_id: str) -> Session:
        session = await self._load(user_id, Session)
        if session is None:
            return Session(user_id=user_id)
        return session

    async def save(self, session: Session) -> Session:
        session = session.model_copy(update={"updated_at": utc_now()})
        await self._store(session.user_id, session)
        return session
