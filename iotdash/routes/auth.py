from fastapi import APIRouter, status

from iotdash.dependencies import auth_service
from iotdash.models import LoginRequest, RegisterRequest
from iotdash.utils import ok

router = APIRouter(tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED, summary="Register and sign in")
async def register(body: RegisterRequest):
    """Creates the account and makes it the current user."""
    return ok(await auth_service.register(body.username, body.email, body.password))


@router.post("/login", summary="Sign in")
async def login(body: LoginRequest):
    return ok(await auth_service.login(body.email, body.password))


@router.post("/logout", summary="Sign out")
async def logout():
    await auth_service.logout()
    return ok()


@router.get("/me", summary="Current user")
async def current_user():
    """The signed-in user, or ``null`` data when nobody is signed in."""
    return ok(await auth_service.get_current_user())


@router.get("/me/summary", summary="Channel counts for the current user")
async def profile_summary():
    return ok(await auth_service.get_profile_summary())
