from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from sessionsplit.core.security import decode_access_token
from sessionsplit.db.mongo import get_db
from sessionsplit.models.user import Player, User
from sessionsplit.repositories.player_repo import PlayerRepository
from sessionsplit.repositories.user_repo import UserRepository

security = HTTPBearer()


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db = Depends(get_db)
) -> User:
    """Get current user from JWT token."""
    try:
        user_id = decode_access_token(credentials.credentials)
    except JWTError:
        raise _credentials_exception("Invalid token")
    if user_id is None:
        raise _credentials_exception("Invalid token")

    user = await UserRepository(db).get_user_by_id(user_id)
    if user is None:
        raise _credentials_exception("User not found")
    return user


async def get_current_player(
    current_user: User = Depends(get_current_user),
    db = Depends(get_db)
) -> Player:
    """The player record linked to the authenticated user."""
    player = await PlayerRepository(db).get_by_user_id(current_user.id)
    if player is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No player profile linked to this account"
        )
    return player
