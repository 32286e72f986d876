from fastapi import APIRouter, Depends, HTTPException, status

from sessionsplit.core.auth import get_current_user
from sessionsplit.core.security import create_access_token, verify_password
from sessionsplit.db.mongo import get_db
from sessionsplit.models.user import User
from sessionsplit.repositories.user_repo import UserRepository
from sessionsplit.schemas.auth import TokenResponse, UserLogin, UserResponse, UserSignup

router = APIRouter()


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserSignup, db = Depends(get_db)):
    """Create a new user account and its linked player."""
    user_repo = UserRepository(db)

    existing_user = await user_repo.get_user_by_email(user_data.email)
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = await user_repo.create_user(user_data)
    return TokenResponse(
        access_token=create_access_token(str(user.id)),
        user=UserResponse.from_user(user)
    )


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, db = Depends(get_db)):
    """Login with email and password."""
    user = await UserRepository(db).get_user_by_email(credentials.email)
    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    return TokenResponse(
        access_token=create_access_token(str(user.id)),
        user=UserResponse.from_user(user)
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user details."""
    return UserResponse.from_user(current_user)
