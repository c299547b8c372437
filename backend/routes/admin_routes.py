import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_db, require_admin
from backend.models.account import Account, AccountRole

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


class AccountLinkSummaryResponse(BaseModel):
    id: str
    email: str
    display_name: str | None = None
    role: str
    linked_record_id: str | None = None
    is_linked: bool


class ChangeRoleRequest(BaseModel):
    role: AccountRole


def to_summary(account: Account) -> AccountLinkSummaryResponse:
    return AccountLinkSummaryResponse(
        id=account.id,
        email=account.email,
        display_name=account.display_name,
        role=account.role,
        linked_record_id=account.linked_record_id,
        is_linked=bool(account.linked_record_id),
    )


@router.get('/accounts', response_model=list[AccountLinkSummaryResponse])
def list_accounts(
    unlinked_only: bool = Query(default=False),
    search: str | None = Query(default=None),
    current_account: Account = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_account

    try:
        query = db.query(Account)
        if unlinked_only:
            query = query.filter(Account.linked_record_id.is_(None))
        term = (search or '').strip().lower()
        if term:
            pattern = f'%{term}%'
            query = query.filter(
                or_(
                    func.lower(Account.email).like(pattern),
                    func.lower(Account.display_name).like(pattern),
                )
            )
        accounts = query.order_by(Account.email.asc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return [to_summary(account) for account in accounts]


@router.patch('/accounts/{account_id}/role', response_model=AccountLinkSummaryResponse)
def change_account_role(
    account_id: str,
    data: ChangeRoleRequest,
    current_account: Account = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Change an account's role while it is still unlinked.

    A linked account keeps its role: the link was made under that role, so a
    Teacher holding a Teacher record cannot become a Parent.
    """
    try:
        account = db.query(Account).filter(Account.id == account_id).first()
        if account is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Account not found.')
        if account.linked_record_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Linked accounts cannot change role.',
            )

        # Same condition again in the write, in case a link lands in between.
        result = db.execute(
            update(Account)
            .where(
                Account.id == account_id,
                or_(Account.linked_record_id.is_(None), Account.linked_record_id == ''),
            )
            .values(role=data.role.value)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Linked accounts cannot change role.',
            )

        db.expire_all()
        account = db.query(Account).filter(Account.id == account_id).one()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    logger.info('Account %s changed role of %s to %s', current_account.id, account_id, data.role.value)
    return to_summary(account)
