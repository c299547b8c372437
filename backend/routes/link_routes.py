import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_account, get_db
from backend.linking.domain import AccountSnapshot, LinkResult, LinkStatus
from backend.linking.resolver import IdentityResolver
from backend.linking.store import SqlRecordStore, account_snapshot
from backend.models.account import Account, AccountRole

router = APIRouter(tags=['link'])

logger = logging.getLogger(__name__)

CONFLICT_DETAIL = (
    'This record is already linked to another account. '
    'Please contact the school administrator.'
)
STORE_ERROR_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


class RollNumberLinkRequest(BaseModel):
    roll_number: str

    @field_validator('roll_number')
    @classmethod
    def validate_roll_number(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Roll number is required.')
        return normalized


class LinkResultResponse(BaseModel):
    status: LinkStatus
    record_id: str | None = None
    detail: str | None = None


def snapshot_for(current_account: Account) -> AccountSnapshot:
    try:
        return account_snapshot(current_account)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Account role is not recognised.',
        ) from exc


def to_link_response(result: LinkResult) -> LinkResultResponse:
    # The other account's identity is never echoed back.
    return LinkResultResponse(status=result.status, record_id=result.record_id, detail=result.detail)


def raise_for_link_failure(result: LinkResult) -> None:
    if result.status is LinkStatus.CONFLICT:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=CONFLICT_DETAIL)
    if result.status is LinkStatus.STORE_ERROR:
        logger.error('Link resolution failed: %s', result.detail)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORE_ERROR_DETAIL)


@router.post('/resolve', response_model=LinkResultResponse)
def resolve_my_link(
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    resolver = IdentityResolver(SqlRecordStore(db))
    result = resolver.resolve_link(snapshot_for(current_account))
    raise_for_link_failure(result)
    return to_link_response(result)


@router.post('/roll-number', response_model=LinkResultResponse)
def link_by_roll_number(
    data: RollNumberLinkRequest,
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    account = snapshot_for(current_account)
    if account.role is not AccountRole.PARENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only parent accounts can link a student by roll number.',
        )

    resolver = IdentityResolver(SqlRecordStore(db))
    result = resolver.resolve_by_explicit_key(account, data.roll_number)
    raise_for_link_failure(result)
    return to_link_response(result)
