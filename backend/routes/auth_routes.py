from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_account, get_db
from backend.linking.domain import LinkStatus
from backend.linking.resolver import IdentityResolver
from backend.linking.store import SqlRecordStore
from backend.models.account import Account
from backend.routes.link_routes import LinkResultResponse, snapshot_for, to_link_response

router = APIRouter(tags=['auth'])


class AccountProfileResponse(BaseModel):
    id: str
    email: str
    display_name: str | None = None
    role: str
    linked_record_id: str | None = None

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    profile: AccountProfileResponse
    link: LinkResultResponse


@router.get('/me', response_model=AccountProfileResponse)
def me(current_account: Account = Depends(get_current_account)):
    return current_account


@router.post('/session', response_model=SessionResponse)
def start_session(
    current_account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """Sign-in hook: try to link the account, then return its profile.

    Conflicts and storage failures are reported in `link` rather than failing
    the sign-in; the dashboard shows them and the account stays unlinked.
    """
    account = snapshot_for(current_account)
    result = IdentityResolver(SqlRecordStore(db)).resolve_link(account)

    linked_record_id = account.linked_record_id
    if result.status in (LinkStatus.LINKED, LinkStatus.ALREADY_LINKED):
        linked_record_id = result.record_id

    profile = AccountProfileResponse(
        id=account.id,
        email=account.email,
        display_name=account.display_name,
        role=account.role.value,
        linked_record_id=linked_record_id,
    )
    return SessionResponse(profile=profile, link=to_link_response(result))
