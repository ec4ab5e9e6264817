from fastapi import APIRouter, Depends, status

from app.core.exceptions import ForbiddenError
from app.deps import get_current_user, object_id, require_admin
from app.models.user import User, UserRole
from app.services import users as user_service

router = APIRouter()


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: user_service.SignUpRequest):
    """Create a Buyer or Seller account."""
    user = await user_service.sign_up(body)
    return {"success": True, "message": "User created successfully", "user": user_service.user_to_dict(user)}


@router.post("/signin")
async def signin(body: user_service.SignInRequest):
    """Exchange email/password for a bearer token."""
    user, token = await user_service.sign_in(body)
    return {
        "success": True,
        "message": "User logged in successfully",
        "token": token,
        "user": user_service.user_to_dict(user),
    }


@router.get("/getUserProfile")
async def get_user_profile(user: User = Depends(get_current_user)):
    return {"success": True, "message": "User found successfully", "user": user_service.user_to_dict(user)}


@router.get("/getAll")
async def get_all_users(admin: User = Depends(require_admin)):
    users = await user_service.list_users()
    return {"success": True, "size": len(users), "users": [user_service.user_to_dict(u) for u in users]}


@router.get("/getById/{user_id}")
async def get_user_by_id(user_id: str, user: User = Depends(get_current_user)):
    """Admin, or the user themselves."""
    uid = object_id(user_id, "user id")
    if user.role != UserRole.ADMIN and user.id != uid:
        raise ForbiddenError("You do not have permission to view this user")
    found = await user_service.get_user(uid)
    return {"success": True, "message": "User found successfully", "user": user_service.user_to_dict(found)}


@router.put("/update/{user_id}")
async def update_user(user_id: str, body: user_service.UserUpdate, user: User = Depends(get_current_user)):
    updated = await user_service.update_user(object_id(user_id, "user id"), body, user)
    return {"success": True, "message": "Successfully updated user profile", "user": user_service.user_to_dict(updated)}


@router.delete("/delete/{user_id}")
async def delete_user(user_id: str, admin: User = Depends(require_admin)):
    await user_service.delete_user(object_id(user_id, "user id"), admin)
    return {"success": True, "message": "Successfully deleted user"}
