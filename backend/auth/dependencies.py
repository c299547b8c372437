from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.database import SessionLocal
from backend.models.account import Account, AccountRole

security = HTTPBearer()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Account:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    account_id = payload.get("sub")
    if not account_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    try:
        account = db.query(Account).filter(Account.id == account_id).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=503,
            detail="Database unavailable. Verify DATABASE_URL and Postgres credentials.",
        ) from exc
    # Profiles are created at signup by the auth provider; never invent one here.
    if account is None:
        raise HTTPException(status_code=404, detail="Account profile not found")
    return account


def require_admin(current_account: Account = Depends(get_current_account)) -> Account:
    try:
        role = AccountRole.parse(current_account.role or "")
    except ValueError:
        role = None
    if role is not AccountRole.ADMIN:
        raise HTTPException(status_code=403, detail="Only admins can manage accounts.")
    return current_account
