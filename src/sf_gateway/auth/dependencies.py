"""FastAPI dependencies: get_current_user / require_admin.

Usage in any protected router:
    from src.sf_gateway.auth.dependencies import CurrentUser, get_current_user

    @router.get("/protected")
    async def protected(user: Annotated[CurrentUser, Depends(get_current_user)]):
        ...
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.sf_common.errors import AdminRequiredError, InvalidCredentialsError
from src.sf_gateway.auth.jwt_handler import decode_token

# tokenUrl points at the shared auth service (used by Swagger UI's "Authorize" button)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str = ""
    name: str = ""
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Extract and validate the JWT Bearer token.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    try:
        payload = decode_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    user_id = payload.get("sub")
    if not user_id:
        raise _CREDENTIALS_EXCEPTION

    return CurrentUser(
        id=str(user_id),
        email=str(payload.get("email") or ""),
        name=str(payload.get("name") or ""),
        role=str(payload.get("role") or "customer"),
    )


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Verify the caller holds the admin role (order status, bank transfers, refunds)."""
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user
