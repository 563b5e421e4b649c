from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.auth.models.user import User
from app.features.auth.schemas.auth import LoginRequest, SignupRequest, TokenResponse, UserResponse
from app.features.auth.utils.security import create_access_token, hash_password, verify_password
from app.platform.exceptions import AuthenticationError, DuplicateAccount
from app.platform.logger import get_logger

logger = get_logger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def register_user(self, request: SignupRequest) -> TokenResponse:
        if await self.get_user_by_email(request.email):
            raise DuplicateAccount()

        new_user = User(
            email=request.email,
            name=request.name,
            password_hash=hash_password(request.password),
        )

        try:
            self.db.add(new_user)
            await self.db.commit()
            await self.db.refresh(new_user)
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateAccount()

        logger.info(f"Registered owner account - user: {new_user.id}")
        return self._token_response(new_user)

    async def login_user(self, request: LoginRequest) -> TokenResponse:
        user = await self.get_user_by_email(request.email)

        # same message for unknown email and wrong password
        if not user or not verify_password(request.password, user.password_hash):
            raise AuthenticationError("Invalid email or password.")

        return self._token_response(user)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    @staticmethod
    def _token_response(user: User) -> TokenResponse:
        token = create_access_token(data={"sub": str(user.id), "email": user.email, "name": user.name})
        return TokenResponse(user=UserResponse.model_validate(user), token=token)
