import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_account, require_admin
from backend.linking.domain import LinkStatus
from backend.routes.admin_routes import list_accounts
from backend.routes.auth_routes import me, start_session


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_get_current_account_resolves_token_subject(record_db, add_account) -> None:
    add_account('u1', 't@x.com', 'teacher')
    token = jwt_handler.create_access_token(subject='u1', email='t@x.com')

    account = get_current_account(credentials=_credentials(token), db=record_db)

    assert account.id == 'u1'


def test_get_current_account_rejects_invalid_token(record_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_account(credentials=_credentials('not-a-token'), db=record_db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_account_rejects_blank_subject(record_db) -> None:
    token = jwt_handler.create_access_token(subject='')

    with pytest.raises(HTTPException) as exception_info:
        get_current_account(credentials=_credentials(token), db=record_db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token subject'


def test_get_current_account_does_not_invent_missing_profile(record_db) -> None:
    token = jwt_handler.create_access_token(subject='ghost')

    with pytest.raises(HTTPException) as exception_info:
        get_current_account(credentials=_credentials(token), db=record_db)

    assert exception_info.value.status_code == 404


def test_me_returns_profile(add_account) -> None:
    account = add_account('u1', 't@x.com', 'teacher', linked_record_id='t1')

    profile = me(current_account=account)

    assert profile.email == 't@x.com'
    assert profile.linked_record_id == 't1'


def test_start_session_links_parent_on_sign_in(record_db, add_account, add_student) -> None:
    add_student('s1', '101', 'Family@X.com')
    parent = add_account('p1', 'family@x.com', 'parent')

    response = start_session(current_account=parent, db=record_db)

    assert response.link.status is LinkStatus.LINKED
    assert response.profile.linked_record_id == 's1'
    assert response.profile.role == 'parent'


def test_start_session_reports_conflict_without_failing(record_db, add_account, add_student) -> None:
    add_student('s1', '101', 'family@x.com')
    add_account('p1', 'family@x.com', 'parent', linked_record_id='s1')
    second = add_account('p2', 'family@x.com', 'parent')

    response = start_session(current_account=second, db=record_db)

    assert response.link.status is LinkStatus.CONFLICT
    assert response.profile.linked_record_id is None


def test_start_session_for_linked_account_is_no_op(record_db, add_account) -> None:
    account = add_account('u1', 't@x.com', 'teacher', linked_record_id='t1')

    response = start_session(current_account=account, db=record_db)

    assert response.link.status is LinkStatus.ALREADY_LINKED
    assert response.profile.linked_record_id == 't1'


def test_require_admin_rejects_parent(add_account) -> None:
    parent = add_account('p1', 'family@x.com', 'parent')

    with pytest.raises(HTTPException) as exception_info:
        require_admin(current_account=parent)

    assert exception_info.value.status_code == 403


def test_list_accounts_filters_unlinked(record_db, add_account) -> None:
    admin = add_account('a1', 'admin@x.com', 'admin')
    add_account('u1', 't@x.com', 'teacher', linked_record_id='t1')
    add_account('p1', 'family@x.com', 'parent')

    everyone = list_accounts(unlinked_only=False, search=None, current_account=admin, db=record_db)
    unlinked = list_accounts(unlinked_only=True, search=None, current_account=admin, db=record_db)

    assert [summary.id for summary in everyone] == ['a1', 'p1', 'u1']
    assert [summary.id for summary in unlinked] == ['a1', 'p1']
    assert {summary.id: summary.is_linked for summary in everyone}['u1'] is True


def test_require_admin_rejects_unrecognised_role(add_account) -> None:
    account = add_account('x1', 'head@x.com', 'principal')

    with pytest.raises(HTTPException) as exception_info:
        require_admin(current_account=account)

    assert exception_info.value.status_code == 403
