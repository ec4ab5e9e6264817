from datetime import datetime

from beanie import PydanticObjectId
from pydantic import BaseModel, EmailStr, Field, model_validator

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import create_access_token, hash_password, verify_password
from app.models.user import User, UserRole
from app.services import phone as phone_service

log = get_logger(__name__)


class SignUpRequest(BaseModel):
    username: str = Field(min_length=3, max_length=30)
    email: EmailStr
    address: str = Field(min_length=1)
    password: str = Field(min_length=6)
    confirm_password: str
    role: UserRole = UserRole.BUYER
    phone_number: str

    @model_validator(mode="after")
    def passwords_match(self) -> "SignUpRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords must match")
        return self


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class UserUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=30)
    address: str | None = None
    phone_number: str | None = None
    password: str | None = Field(default=None, min_length=6)
    role: UserRole | None = None


async def sign_up(body: SignUpRequest) -> User:
    if body.role == UserRole.ADMIN and not get_settings().allow_admin_signup:
        raise ForbiddenError("Admin accounts cannot be self-registered")
    email = body.email.lower()
    if await User.find_one(User.email == email):
        raise ConflictError("Email already exists.")
    user = User(
        username=body.username,
        email=email,
        password_hash=hash_password(body.password),
        address=body.address,
        phone_number=phone_service.normalize(body.phone_number),
        role=body.role,
    )
    await user.insert()
    log.info("user_created", user_id=str(user.id), role=user.role.value)
    await log_event("user_created", "user", str(user.id), actor=str(user.id), data={"role": user.role.value})
    return user


async def sign_in(body: SignInRequest) -> tuple[User, str]:
    """Return (user, bearer token). Same message for unknown email and wrong password."""
    user = await User.find_one(User.email == body.email.lower())
    if not user or not verify_password(body.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    token = create_access_token(token_payload_for_user(user))
    log.info("user_login", user_id=str(user.id))
    return user, token


def token_payload_for_user(user: User) -> dict:
    return {"user_id": str(user.id), "email": user.email, "role": user.role.value}


async def get_user(user_id: PydanticObjectId) -> User:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def list_users() -> list[User]:
    return await User.find_all().sort(-User.created_at).to_list()


async def update_user(user_id: PydanticObjectId, body: UserUpdate, actor: User) -> User:
    is_admin = actor.role == UserRole.ADMIN
    if not is_admin and actor.id != user_id:
        raise ForbiddenError("You can only update your own profile")
    if body.role is not None and not is_admin:
        raise ForbiddenError("Only an admin can change roles")
    user = await get_user(user_id)
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise BadRequestError("No fields to update")
    if "phone_number" in changes:
        user.phone_number = phone_service.normalize(changes.pop("phone_number"))
    if "password" in changes:
        user.password_hash = hash_password(changes.pop("password"))
    for key, value in changes.items():
        setattr(user, key, value)
    user.updated_at = datetime.utcnow()
    await user.save()
    await log_event(
        "user_updated", "user", str(user.id),
        actor=str(actor.id), data={"fields": sorted(body.model_dump(exclude_none=True))},
    )
    return user


async def delete_user(user_id: PydanticObjectId, actor: User) -> None:
    user = await get_user(user_id)
    await user.delete()
    log.info("user_deleted", user_id=str(user_id))
    await log_event("user_deleted", "user", str(user_id), actor=str(actor.id))


def user_to_dict(user: User) -> dict:
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role.value,
        "phone_number": user.phone_number,
        "address": user.address,
        "created_at": user.created_at.isoformat(),
    }
