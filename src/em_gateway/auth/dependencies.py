"""FastAPI dependencies for caller identity.

Authentication happens upstream; the authenticating gateway forwards the
verified account id in the X-User-Id header.

Usage in any router:
    from src.em_gateway.auth.dependencies import get_caller_id

    @router.get("/mine")
    async def mine(caller_id: Annotated[str, Depends(get_caller_id)]):
        ...
"""

from fastapi import Header, HTTPException, status

from config.settings import settings
from src.em_common.errors import PlatformOperatorRequiredError

CALLER_HEADER = "X-User-Id"

_MISSING_CALLER = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail=f"Missing {CALLER_HEADER} header",
)


async def get_caller_id(
    x_user_id: str | None = Header(default=None, alias=CALLER_HEADER),
) -> str:
    """Return the caller's account id. Raises HTTP 401 when the header is absent."""
    if x_user_id is None or not x_user_id.strip():
        raise _MISSING_CALLER
    return x_user_id.strip()


async def require_platform_operator(
    x_user_id: str | None = Header(default=None, alias=CALLER_HEADER),
) -> str:
    """Verify the caller is the platform account.

    Used to protect operator-only endpoints (global invariant check).
    """
    caller_id = await get_caller_id(x_user_id)
    if caller_id != settings.PLATFORM_WALLET_ID:
        raise PlatformOperatorRequiredError()
    return caller_id
