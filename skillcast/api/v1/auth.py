from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from skillcast.db.session import get_session
from skillcast.models.user import User
from skillcast.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    TokenRequest,
)
from skillcast.schemas.user import Identity, UserOut
from skillcast.services import auth_service
from skillcast.services.auth_service import get_current_identity, get_current_user
from skillcast.services.refresh_store import RefreshStore, get_refresh_store
from skillcast.services.user_service import to_user_out, to_user_summary

router = APIRouter(prefix='/auth', tags=['auth'])


@router.post('/register', response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, session: Session = Depends(get_session)) -> UserOut:
    user = auth_service.create_user(session, payload.username, payload.email, payload.password, payload.name)
    return to_user_out(user)


@router.post('/login', response_model=LoginResponse)
def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
    store: RefreshStore = Depends(get_refresh_store),
) -> LoginResponse:
    user, credentials = auth_service.login(session, store, payload.email, payload.password)
    return LoginResponse(
        access_token=credentials.access_token,
        refresh_token=credentials.refresh_token,
        user=to_user_summary(user),
    )


@router.post('/refresh', response_model=RefreshResponse, response_model_exclude_none=True)
def refresh(
    payload: TokenRequest,
    session: Session = Depends(get_session),
    store: RefreshStore = Depends(get_refresh_store),
) -> RefreshResponse:
    access_token, refresh_token = auth_service.refresh_access(session, store, payload.token)
    return RefreshResponse(access_token=access_token, refresh_token=refresh_token)


@router.post('/logout', response_model=MessageResponse)
def logout(
    payload: TokenRequest,
    _: Identity = Depends(get_current_identity),
    store: RefreshStore = Depends(get_refresh_store),
) -> MessageResponse:
    auth_service.logout(store, payload.token)
    return MessageResponse(message='Logged out successfully')


@router.post('/change-password', response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    session: Session = Depends(get_session),
    store: RefreshStore = Depends(get_refresh_store),
    user: User = Depends(get_current_user),
) -> MessageResponse:
    auth_service.change_password(session, store, user, payload.current_password, payload.new_password)
    return MessageResponse(message='Password updated; all sessions have been signed out')


@router.get('/me', response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return to_user_out(user)
