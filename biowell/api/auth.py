from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from biowell.core.security import create_access_token, decode_access_token, get_password_hash, verify_password
from biowell.db.models import Profile, Subscription, User
from biowell.db.session import get_db

router = APIRouter(prefix="/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: Optional[str] = Field(default=None, max_length=80)
    last_name: Optional[str] = Field(default=None, max_length=80)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    id: int
    email: str
    created_at: datetime
    onboarding_completed: bool
    plan_tier: str


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    try:
        user_id = int(decode_access_token(token))
    except (JWTError, ValueError):
        raise _unauthorized()
    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized()
    return user


def get_or_create_profile(db: Session, user_id: int) -> Profile:
    """Every account owns exactly one profile row; create it lazily. Flushes, never commits."""
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if profile is None:
        profile = Profile(user_id=user_id, onboarding_step=1, onboarding_completed=False)
        db.add(profile)
        db.flush()
    return profile


def current_plan_tier(db: Session, user_id: int) -> str:
    sub = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if sub is None or sub.status not in ACTIVE_SUBSCRIPTION_STATUSES:
        return "free"
    return sub.plan_tier


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Session = Depends(get_db)) -> TokenResponse:
    if _find_by_email(db, payload.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(email=payload.email.lower(), password_hash=get_password_hash(payload.password))
    db.add(user)
    db.flush()
    profile = get_or_create_profile(db, user.id)
    profile.first_name = (payload.first_name or "").strip() or None
    profile.last_name = (payload.last_name or "").strip() or None
    db.commit()
    return TokenResponse(access_token=create_access_token(subject=str(user.id)))


@router.post("/login", response_model=TokenResponse)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> TokenResponse:
    user = _find_by_email(db, form_data.username)
    if user is None or not verify_password(form_data.password, user.password_hash):
        raise _unauthorized()
    return TokenResponse(access_token=create_access_token(subject=str(user.id)))


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> MeResponse:
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    return MeResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at,
        onboarding_completed=bool(profile and profile.onboarding_completed),
        plan_tier=current_plan_tier(db, user.id),
    )
