"""Authentication utilities"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.account import Account, AccountMember, AccountPermission, ALL_PERMISSIONS
from app.models.user import User, UserRole

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a hash"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

def create_user_token(user: User) -> str:
    """Access token for a user; the subject is the user id"""
    return create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

def decode_token(token: str) -> Optional[int]:
    """Return the user id carried by a token, or None if it is invalid"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    sub = payload.get("sub")
    if sub is None:
        return None
    try:
        return int(sub)
    except (TypeError, ValueError):
        return None

async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # 1. Try Bearer Token (Header) - Handled by oauth2_scheme
    if not token:
        # 2. Try Cookie
        token = request.cookies.get("access_token")
        if not token:
            raise credentials_exception

    user_id = decode_token(token)
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception
    return user

async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Ensure user is active"""
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")
    return current_user

def require_role(required_roles: list):
    """Dependency to check user role"""
    async def role_checker(current_user: User = Depends(get_current_active_user)):
        if current_user.role not in required_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin access required"
            )
        return current_user
    return role_checker

require_admin = require_role([UserRole.ADMIN])


# ── Account context ───────────────────────────────────────────────────────────

@dataclass
class AccountContext:
    """The account a request acts on and what the caller may do in it"""
    user: User
    account: Optional[Account] = None
    membership: Optional[AccountMember] = None
    is_owner: bool = False
    permissions: List[str] = field(default_factory=list)

    @property
    def account_id(self) -> Optional[int]:
        return self.account.id if self.account else None

    @property
    def role(self) -> Optional[str]:
        if self.is_owner:
            return "OWNER"
        if self.membership is not None:
            return self.membership.role.value
        return None

    @property
    def is_admin(self) -> bool:
        return self.user.role == UserRole.ADMIN

    def has_permissions(self, required) -> bool:
        if self.is_owner:
            return True
        granted = set(self.permissions)
        return all(AccountPermission(p).value in granted for p in required)

def resolve_account_context(db: Session, user: User) -> AccountContext:
    """Owned account first, then the first active membership"""
    account = db.query(Account).filter(Account.owner_id == user.id).first()
    if account is not None:
        return AccountContext(user=user, account=account, is_owner=True, permissions=list(ALL_PERMISSIONS))

    membership = (
        db.query(AccountMember)
        .filter(AccountMember.user_id == user.id, AccountMember.is_active == True)  # noqa: E712
        .order_by(AccountMember.joined_at)
        .first()
    )
    if membership is not None:
        return AccountContext(
            user=user,
            account=membership.account,
            membership=membership,
            permissions=list(membership.permissions or []),
        )
    return AccountContext(user=user)

def get_account_context(
    require_account: bool = True,
    require_owner: bool = False,
    require_permissions: Optional[list] = None,
):
    """Dependency factory resolving the caller's account and enforcing access"""
    async def context_checker(
        current_user: User = Depends(get_current_active_user),
        db: Session = Depends(get_db),
    ) -> AccountContext:
        ctx = resolve_account_context(db, current_user)

        if (require_account or require_owner or require_permissions) and ctx.account is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No account found")

        # tokens issued before an admin deactivated the account stop working here
        if ctx.account is not None and not ctx.account.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This account has been deactivated")

        if require_owner and not ctx.is_owner:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the account owner can perform this action",
            )

        if require_permissions and not ctx.has_permissions(require_permissions):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

        return ctx
    return context_checker
