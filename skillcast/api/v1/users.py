from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlmodel import Session
from skillcast.db.session import get_session
from skillcast.schemas.auth import MessageResponse
from skillcast.schemas.user import Identity, UserOut
from skillcast.services.auth_service import require_admin
from skillcast.services.refresh_store import RefreshStore, get_refresh_store
from skillcast.services.user_service import get_user, list_users, to_user_out

router = APIRouter(prefix='/users', tags=['users'])


@router.get('', response_model=list[UserOut])
def list_all(
    limit: int = 50,
    offset: int = 0,
    session: Session = Depends(get_session),
    _: Identity = Depends(require_admin),
) -> list[UserOut]:
    return [to_user_out(user) for user in list_users(session, limit=limit, offset=offset)]


@router.post('/{user_id}/revoke-sessions', response_model=MessageResponse)
def revoke_sessions(
    user_id: str,
    session: Session = Depends(get_session),
    store: RefreshStore = Depends(get_refresh_store),
    admin: Identity = Depends(require_admin),
) -> MessageResponse:
    if not get_user(session, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found')
    count = store.revoke_all(user_id)
    logger.info("Admin {} signed out user {}", admin.id, user_id)
    return MessageResponse(message=f'Revoked {count} session(s)')
