from __future__ import annotations

from uuid import UUID

import jwt

from marketplace_chat.application.dto.identity import Identity
from marketplace_chat.application.exceptions import AuthenticationError


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret.

    Expected claims: ``sub`` (user UUID) and ``role``.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            raise AuthenticationError("Invalid or expired token") from exc

        raw_sub = payload.get("sub") or payload.get("userId")
        role = payload.get("role")
        if not raw_sub or not isinstance(role, str):
            raise AuthenticationError("Token is missing subject or role")
        try:
            user_id = UUID(str(raw_sub))
        except ValueError as exc:
            raise AuthenticationError("Token subject is not a valid user id") from exc
        return Identity(user_id=user_id, role=role)
