from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import create_access_token, get_current_user
from ..core.permissions import actions_for_role
from ..core.rate_limit import rate_limit_dependency
from ..models.models import User
from ..schemas.schemas import CurrentUserRead, ProfileUpdate, RegisterRequest, Token, UserRead
from ..services import users as user_service
from ..services.audit import audit_log

router = APIRouter()

login_rate_limit = rate_limit_dependency("auth:login", limit=10, window_seconds=60)
register_rate_limit = rate_limit_dependency("auth:register", limit=5, window_seconds=300)


def _current_user_payload(user: User) -> CurrentUserRead:
    payload = CurrentUserRead.model_validate(user)
    payload.permissions = list(actions_for_role(user.role))
    return payload


@router.post("/login", response_model=Token, dependencies=[Depends(login_rate_limit)])
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = user_service.authenticate(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="E-mel atau kata laluan tidak sah.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    audit_log(db, user.id, "LOGIN", f"Log masuk {user.email}", target_entity_type="User", target_entity_id=user.id)
    return Token(access_token=create_access_token(user), role=user.role)


@router.get("/me", response_model=CurrentUserRead)
def read_me(user: User = Depends(get_current_user)) -> CurrentUserRead:
    return _current_user_payload(user)


@router.patch("/me", response_model=CurrentUserRead)
def update_me(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> CurrentUserRead:
    user_service.update_profile(
        db,
        user,
        name=payload.name,
        phone=payload.phone,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    db.refresh(user)
    return _current_user_payload(user)


@router.post("/register", response_model=UserRead, status_code=201, dependencies=[Depends(register_rate_limit)])
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> UserRead:
    user = user_service.register_user(
        db,
        email=payload.email,
        name=payload.name,
        phone=payload.phone,
        password=payload.password,
        confirm_password=payload.confirm_password,
        role=payload.role,
    )
    return UserRead.model_validate(user)
