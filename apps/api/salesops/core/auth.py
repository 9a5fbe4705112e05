from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from salesops.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    roles: list[str]


def _claim_roles(payload: dict) -> list[str]:
    roles = payload.get("roles")
    if isinstance(roles, list):
        return [str(role) for role in roles]
    single = payload.get("role")
    if isinstance(single, str) and single:
        return [single]
    return ["user"]


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        return AuthUser(sub="anonymous", roles=["guest"])

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return AuthUser(sub="anonymous", roles=["guest"])

    subject = str(payload.get("sub") or payload.get("id") or "anonymous")
    return AuthUser(sub=subject, roles=_claim_roles(payload))


def issue_token(sub: str, roles: list[str]) -> str:
    settings = get_settings()
    return jwt.encode({"sub": sub, "roles": roles}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
