from fastapi import Header, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(request: Request, api_key: str = Security(api_key_header)):
    """Verify API key for authentication"""
    if not api_key or api_key != request.app.state.config.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key"
        )
    return api_key


async def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id", gt=0)) -> int:
    """Caller identity. Ownership checks compare task owners against this ID."""
    return x_user_id
