import os

import structlog
from fastapi import HTTPException, status
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow
from shared.errors import ConflictError, InternalError, NotFoundError
from shared.security import ROLE_ADMIN, ROLE_USER, create_access_token

from .models import Role, User
from .repository import RoleRepository, UserRepository
from .schemas import TokenResponse, UserCreate, UserLogin

logger = structlog.get_logger(__name__)

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:

    @staticmethod
    def _hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    @staticmethod
    def _verify_password(plain: str, hashed: str) -> bool:
        return _pwd_context.verify(plain, hashed)

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate) -> User:
        if await UserRepository.exists_by_username(db, data.username):
            raise ConflictError("Username already taken")
        if await UserRepository.exists_by_email(db, data.email):
            raise ConflictError("Email already registered")

        role = await RoleRepository.get_by_name(db, ROLE_USER)
        if role is None:
            raise InternalError("Default user role not found")

        user = User(
            username=data.username,
            email=data.email,
            hashed_password=AuthService._hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number,
            roles=[role],
        )
        user = await UserRepository.create(db, user)
        logger.info("user_registered", user_id=user.id, username=user.username)
        return user

    @staticmethod
    async def login(db: AsyncSession, data: UserLogin) -> TokenResponse:
        user = await UserRepository.get_by_username(db, data.username)
        if not user or not AuthService._verify_password(data.password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect username or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is disabled",
            )

        user.last_login = utcnow()
        await db.commit()

        token = create_access_token(
            data={"sub": str(user.id), "username": user.username, "roles": user.role_names}
        )
        return TokenResponse(
            access_token=token,
            user_id=user.id,
            username=user.username,
            email=user.email,
        )

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User not found with ID: {user_id}")
        return user

    @staticmethod
    async def list_users(db: AsyncSession) -> list[User]:
        return await UserRepository.list_all(db)


async def seed_roles_and_admin(db: AsyncSession) -> None:
    """Creates the two roles and the admin account if they are missing."""
    roles = {}
    for name in (ROLE_USER, ROLE_ADMIN):
        role = await RoleRepository.get_by_name(db, name)
        if role is None:
            role = Role(name=name)
            db.add(role)
            logger.info("role_created", role=name)
        roles[name] = role
    await db.flush()

    admin_username = os.getenv("ADMIN_USERNAME", "admin")
    if not await UserRepository.exists_by_username(db, admin_username):
        admin_password = os.getenv("ADMIN_PASSWORD", "")
        if not admin_password:
            logger.warning("admin_password_not_set", username=admin_username)
            admin_password = "admin"
        db.add(
            User(
                username=admin_username,
                email=os.getenv("ADMIN_EMAIL", "admin@shopsphere.com"),
                hashed_password=AuthService._hash_password(admin_password),
                first_name="Admin",
                roles=[roles[ROLE_ADMIN]],
            )
        )
        logger.info("admin_user_created", username=admin_username)
    await db.commit()
