from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from creditapi.core.exceptions import AuthenticationError, UnauthorizedError
from creditapi.core.security import TokenPayload, decode_access_token
from creditapi.schemas.admin import AdminIdentity, RequestMetadata

# JWT Bearer 토큰 스킴
security = HTTPBearer(auto_error=False)


def verify_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenPayload:
    """필수 인증 - 유효한 Bearer 토큰이 필요함"""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return decode_access_token(credentials.credentials)


def get_current_user_id(token: TokenPayload = Depends(verify_bearer_token)) -> str:
    """인증된 사용자의 원장 user_id"""
    return token.sub


def require_admin(token: TokenPayload = Depends(verify_bearer_token)) -> AdminIdentity:
    """관리자 권한이 필요한 엔드포인트용 의존성"""
    if not token.is_admin:
        raise UnauthorizedError("Admin access required")
    return AdminIdentity(username=token.username or token.sub, is_admin=True)


def get_request_metadata(request: Request) -> RequestMetadata:
    """감사 기록용 클라이언트 IP/User-Agent 추출"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.headers.get("x-real-ip") or (
            request.client.host if request.client else None
        )
    return RequestMetadata(
        ip_address=ip_address or "unknown",
        user_agent=request.headers.get("user-agent") or "unknown",
    )
