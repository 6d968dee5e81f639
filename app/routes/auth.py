"""API Routes - Authentication"""
import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Request, status, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.account import Account, AccountMember
from app.models.password_reset_token import PasswordResetToken
from app.models.user import User
from app.schemas.user import (
    ForgotPasswordRequest, LoginRequest, MeResponse, ResetPasswordRequest, Token, UserCreate, UserResponse,
)
from app.services.account_service import create_account_for_user
from app.services.email_service import email_service
from app.utils.auth import (
    create_user_token, get_current_active_user, get_password_hash, resolve_account_context, verify_password,
)
from app.utils.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

GENERIC_RESET_MESSAGE = "If an account exists with this email, you will receive a password reset link."

def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        expires=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        secure=not settings.DEBUG,  # False in Dev (HTTP), True in Prod (HTTPS)
    )

def _authenticate(db: Session, email: str, password: str) -> User:
    """Check credentials and the account gates a login must pass"""
    user = db.query(User).filter(User.email == email.strip().lower()).first()

    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been deactivated")

    owned = db.query(Account).filter(Account.owner_id == user.id).first()
    if owned is None and not user.is_admin:
        memberships = db.query(AccountMember).filter(AccountMember.user_id == user.id).all()
        if memberships and not any(m.is_active for m in memberships):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your access to this workspace has been deactivated",
            )
        if not memberships:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No account found for this user")
        active = next(m for m in memberships if m.is_active)
        account = active.account
    else:
        account = owned

    if account is not None and not account.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This account has been deactivated")

    user.last_login = datetime.utcnow()
    db.commit()
    return user

@router.post("/login", response_model=Token)
@limiter.limit("10/minute")
async def login(request: Request, response: Response, credentials: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password"""
    user = _authenticate(db, credentials.email, credentials.password)
    access_token = create_user_token(user)
    _set_auth_cookie(response, access_token)
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/token", response_model=Token)
async def login_form(response: Response, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    OAuth2 password flow for the interactive docs.

    **Note for Swagger UI:** enter your email as `username`; leave `client_id` and `client_secret` empty.
    """
    user = _authenticate(db, form_data.username, form_data.password)
    access_token = create_user_token(user)
    _set_auth_cookie(response, access_token)
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(request: Request, response: Response, user_data: UserCreate, db: Session = Depends(get_db)):
    """Create a user together with a FREE workspace they own"""
    email = user_data.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User with this email already exists")

    db_user = User(
        email=email,
        name=user_data.name.strip(),
        hashed_password=get_password_hash(user_data.password),
        is_active=True,
    )
    db.add(db_user)
    create_account_for_user(db, db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Registered user {db_user.id}")

    access_token = create_user_token(db_user)
    _set_auth_cookie(response, access_token)
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/logout")
async def logout(response: Response):
    """Logout and clear cookie"""
    response.delete_cookie("access_token")
    return {"message": "Logged out successfully"}

@router.get("/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_active_user), db: Session = Depends(get_db)):
    """Current user with the account they act in"""
    ctx = resolve_account_context(db, current_user)
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        account_id=ctx.account_id,
        account_role=ctx.role,
        is_owner=ctx.is_owner,
        permissions=ctx.permissions,
    )

# Password Reset Endpoints
@router.post("/forgot-password")
@limiter.limit("3/hour")
async def forgot_password(request: Request, payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """
    Request a password reset link.
    The response is identical whether or not the email is registered.
    """
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    if not user:
        return {"message": GENERIC_RESET_MESSAGE}

    if not user.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This account has no password set. Please ask your account owner for a new invitation.",
        )

    db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).delete()

    token = PasswordResetToken.create_token()
    db.add(PasswordResetToken(user_id=user.id, token=token, expires_at=PasswordResetToken.default_expiry()))
    db.commit()

    reset_url = f"{settings.APP_URL}/reset-password?token={token}"
    email_sent = email_service.send_password_reset_email(to_email=user.email, reset_url=reset_url, name=user.name)

    response = {"message": GENERIC_RESET_MESSAGE}

    # In development mode, include debug info
    if settings.DEBUG:
        response["dev_email_sent"] = email_sent
        response["dev_reset_url"] = reset_url

    return response

@router.get("/verify-reset-token/{token}")
async def verify_reset_token(token: str, db: Session = Depends(get_db)):
    """Verify if a reset token is valid"""
    reset_token = db.query(PasswordResetToken).filter(PasswordResetToken.token == token).first()

    if not reset_token or reset_token.is_expired():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    return {"valid": True, "email": reset_token.user.email}

@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    """Reset password using a valid token"""
    reset_token = db.query(PasswordResetToken).filter(PasswordResetToken.token == payload.token).first()

    if not reset_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    if reset_token.is_expired():
        db.delete(reset_token)
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reset token has expired")

    user = reset_token.user
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been deactivated")

    user.hashed_password = get_password_hash(payload.password)
    db.query(PasswordResetToken).filter(PasswordResetToken.user_id == user.id).delete()
    db.commit()

    return {"message": "Password reset successful. You can now login with your new password."}
