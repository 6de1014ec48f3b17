"""
Tenant context dependencies for FastAPI.

Authentication and authorization happen upstream. By the time a request reaches
the ledger engine it carries a bearer token whose claims name the tenant and the
acting user; every read and write below is scoped by that tenant.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from backend.app.core.exceptions import AuthenticationError
from backend.app.core.jwt import decode_access_token

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TenantContext:
    """Authenticated caller: opaque tenant id plus the acting user."""
    tenant_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None


async def get_tenant_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TenantContext:
    """
    FastAPI dependency resolving the tenant context from the bearer token.

    Raises:
        AuthenticationError: token missing, invalid, expired or without tenant claim
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    tenant_id = payload.get("tenant_id")
    if tenant_id is None:
        raise AuthenticationError("Token carries no tenant")

    return TenantContext(
        tenant_id=int(tenant_id),
        user_id=payload.get("user_id"),
        username=payload.get("sub"),
    )
