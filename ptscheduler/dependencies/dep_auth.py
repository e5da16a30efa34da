from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from ptscheduler.models.mod_auth import AuthUser, UserRole, TokenData
from ptscheduler.configuration.config import Config
import httpx
from datetime import datetime, timezone

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

# JWKS of the tenant, fetched once per process
_jwks_cache = {}

def _tenant_url(path: str) -> str:
    return f"https://{Config.AZURE_ENTRAID_TENANT_SUBDOMAIN}.b2clogin.com/{Config.AZURE_ENTRAID_TENANT_ID}/{path}"

async def get_jwks(refresh: bool = False) -> dict:
    """
    Fetch and cache the JSON Web Key Set (JWKS) from Microsoft Entra External ID.
    The JWKS contains the public keys used to verify the JWT tokens.
    """
    if refresh or "keys" not in _jwks_cache:
        async with httpx.AsyncClient() as client:
            response = await client.get(_tenant_url("discovery/v2.0/keys"))
            response.raise_for_status()
            _jwks_cache.update(response.json())
    return _jwks_cache

async def get_key(kid: str) -> dict:
    """Get the public key matching the key ID, refreshing the JWKS once on a miss (key rotation)"""
    for refresh in (False, True):
        jwks = await get_jwks(refresh=refresh)
        for key in jwks.get("keys", []):
            if key["kid"] == kid:
                return key
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unable to verify credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

def _role_from_claims(payload: dict) -> UserRole:
    """First application role the token carries that this service knows about"""
    for role in payload.get("roles", []):
        if role.upper() in UserRole.__members__:
            return UserRole[role.upper()]
    return UserRole.MEMBER

async def verify_token(token: str) -> TokenData:
    """
    Verify the JWT token and extract its claims.
    Raises HTTPException if token is invalid.
    """
    try:
        header = jwt.get_unverified_header(token)
        key = await get_key(header["kid"])
        payload = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=Config.AZURE_ENTRAID_CLIENT_ID,
            issuer=_tenant_url("v2.0/")
        )
        token_data = TokenData(
            id=payload.get("oid"),  # Object ID from Entra External ID
            email=payload.get("email"),
            name=payload.get("name", ""),
            role=_role_from_claims(payload),
            exp=payload.get("exp")
        )
        if token_data.exp and datetime.now(timezone.utc).timestamp() > token_data.exp:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return token_data
    except (JWTError, KeyError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

async def get_current_user(token: str = Depends(oauth2_scheme)) -> AuthUser:
    """
    Get the current authenticated user from the token.
    This is the main dependency to be used in protected endpoints.
    """
    token_data = await verify_token(token)
    return AuthUser(
        id=token_data.id,
        email=token_data.email,
        name=token_data.name,
        role=token_data.role
    )
