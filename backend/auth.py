# auth.py - Bearer token verification for the add-on engine
# Features:
# - HS256 JWT with JTI, issued by the platform's identity service
# - Role hierarchy (super_admin, org_admin, auditor, power_user, user)
# - Tenant scoping: a token only grants access to its own tenant
#
# Identity management (registration, login, passwords) lives outside this service.

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum as PyEnum
from typing import Optional, Dict, Any

from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

logger = logging.getLogger("addon-engine.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "⚠️  JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

security = HTTPBearer()


# ============================================================
# ROLE HIERARCHY
# ============================================================

class UserRole(str, PyEnum):
    SUPER_ADMIN = "super_admin"
    ORG_ADMIN = "org_admin"
    AUDITOR = "auditor"
    POWER_USER = "power_user"
    USER = "user"


ROLE_HIERARCHY = {
    UserRole.SUPER_ADMIN: 5,
    UserRole.ORG_ADMIN: 4,
    UserRole.AUDITOR: 3,
    UserRole.POWER_USER: 2,
    UserRole.USER: 1,
}


class CurrentUser(BaseModel):
    id: str
    tenant_id: str
    role: str


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Token handling shared by the routers and tooling"""

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    role = payload.get("role", UserRole.USER.value)
    try:
        UserRole(role)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")

    return CurrentUser(id=user_id, tenant_id=tenant_id, role=role)


def require_min_role(min_role: UserRole):
    """Dependency factory: require user role level >= min_role"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        user_level = ROLE_HIERARCHY.get(UserRole(user.role), 0)
        required_level = ROLE_HIERARCHY.get(min_role, 0)
        if user_level < required_level:
            raise HTTPException(status_code=403, detail="Insufficient role level")
        return user
    return _check


def require_tenant_access(min_role: UserRole = UserRole.USER):
    """Dependency factory: path tenant must match the token's tenant, plus a role floor"""
    async def _check(
        tenant_id: str,
        user: CurrentUser = Depends(require_min_role(min_role)),
    ) -> CurrentUser:
        if user.tenant_id != tenant_id:
            raise HTTPException(
                status_code=403,
                detail={"error": "Cross-tenant access denied", "code": "TENANT_MISMATCH"},
            )
        return user
    return _check
