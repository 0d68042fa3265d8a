from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.errors import DuplicateKeyError

from vouchervault.api.deps import get_account_service, get_db
from vouchervault.core.auth import create_access_token, get_current_user
from vouchervault.core.security import verify_password
from vouchervault.models.user import PushTokenUpdate, UserCreate, UserResponse, UserUpdate
from vouchervault.repositories.user_repo import UserRepository
from vouchervault.schemas.auth import EmailChange, PasswordChange, TokenResponse, UserLogin
from vouchervault.services.account_service import AccountService

router = APIRouter()


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, db = Depends(get_db)):
    """Register a new user"""
    user_repo = UserRepository(db)

    if await user_repo.get_user_by_email(user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    try:
        user = await user_repo.create_user(user_data)
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    return TokenResponse(
        access_token=create_access_token(str(user.id)),
        user=user.to_response()
    )


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, db = Depends(get_db)):
    """Login with email and password"""
    user = await UserRepository(db).get_user_by_email(credentials.email)
    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    return TokenResponse(
        access_token=create_access_token(str(user.id)),
        user=user.to_response()
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: UserResponse = Depends(get_current_user)):
    """Get current user information"""
    return current_user


@router.patch("/me", response_model=UserResponse)
async def update_profile(
    payload: UserUpdate,
    current_user: UserResponse = Depends(get_current_user),
    db = Depends(get_db)
):
    """Update name or notification preference"""
    updates = payload.model_dump(exclude_unset=True, exclude_none=True)
    user = await UserRepository(db).update_user(current_user.id, updates)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user.to_response()


@router.put("/push-token", status_code=status.HTTP_204_NO_CONTENT)
async def register_push_token(
    payload: PushTokenUpdate,
    current_user: UserResponse = Depends(get_current_user),
    db = Depends(get_db)
):
    """Register (or clear) the Expo push token of this device"""
    await UserRepository(db).set_push_token(current_user.id, payload.push_token)


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    payload: PasswordChange,
    current_user: UserResponse = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service)
):
    """Change password; the current one must be given"""
    await accounts.change_password(current_user, payload.current_password, payload.new_password)


@router.put("/email", response_model=UserResponse)
async def change_email(
    payload: EmailChange,
    current_user: UserResponse = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service)
):
    """Move the account to a new email address"""
    return await accounts.change_email(current_user, payload.current_password, payload.email)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    current_user: UserResponse = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service)
):
    """Delete the account with its vouchers, owned families, sent invites and notifications"""
    await accounts.delete_account(current_user)
