from typing import Generator, Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

from governance.core.approval.resolvers import parse_user_id
from governance.db.session import SessionLocal


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> UUID:
    """Acting user id, as asserted by the authenticating proxy."""
    user_id = parse_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user_id
