import logging
from typing import Optional

from iotdash.database import CHANNELS_KEY, CURRENT_USER_KEY, USERS_KEY, Database
from iotdash.errors import EmailInUse, InvalidCredentials, NotAuthenticated
from iotdash.models import Channel, ProfileSummary, StoredUser, User
from iotdash.utils import new_id, utcnow

logger = logging.getLogger(__name__)


class AuthService:
    """
    Registers and signs in users by exact email + password match.

    The signed-in user is a single persisted record (the "current user");
    every channel and data operation acts on behalf of it.
    """

    def __init__(self, database: Database):
        self.db = database

    async def register(self, username: str, email: str, password: str) -> User:
        await self.db.initialize()
        await self.db.delay(0.5)

        async with self.db.lock:
            users = await self.db.get_collection(USERS_KEY)
            if any(u["email"] == email for u in users):
                raise EmailInUse()

            stored = StoredUser(
                id=new_id(),
                username=username,
                email=email,
                password=password,
                created_at=utcnow(),
            )
            users.append(stored.to_record())
            await self.db.save_collection(USERS_KEY, users)

        user = stored.public()
        await self.db.set_item(CURRENT_USER_KEY, user.to_record())
        logger.info("Registered user %s (%s)", user.id, email)
        return user

    async def login(self, email: str, password: str) -> User:
        await self.db.initialize()
        await self.db.delay(0.5)

        users = await self.db.get_collection(USERS_KEY)
        match = next((u for u in users if u["email"] == email and u["password"] == password), None)
        if match is None:
            logger.info("Failed login for %s", email)
            raise InvalidCredentials()

        user = StoredUser(**match).public()
        await self.db.set_item(CURRENT_USER_KEY, user.to_record())
        return user

    async def logout(self) -> None:
        await self.db.remove_item(CURRENT_USER_KEY)

    async def get_current_user(self) -> Optional[User]:
        record = await self.db.get_item(CURRENT_USER_KEY)
        return User(**record) if record else None

    async def require_user(self) -> User:
        user = await self.get_current_user()
        if user is None:
            raise NotAuthenticated()
        return user

    async def get_profile_summary(self) -> ProfileSummary:
        user = await self.require_user()
        owned = [
            Channel(**c) for c in await self.db.get_collection(CHANNELS_KEY)
            if c["userId"] == user.id
        ]
        public = sum(1 for c in owned if c.is_public)
        return ProfileSummary(
            user=user,
            total_channels=len(owned),
            public_channels=public,
            private_channels=len(owned) - public,
        )
