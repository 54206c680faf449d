from __future__ import annotations

import jwt

from anonpro_dm.application.dto.principal import Principal


class HS256Verifier:
    """Verify JWTs signed with the shared project secret and read the caller's alias."""

    def __init__(self, secret: str, algorithm: str = "HS256", alias_claim: str = "alias") -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._alias_claim = alias_claim

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            options={"verify_aud": False},
        )
        metadata = payload.get("user_metadata") or {}
        alias = payload.get(self._alias_claim) or metadata.get(self._alias_claim) or payload.get("sub")
        if not alias:
            raise jwt.InvalidTokenError(f"Token has no {self._alias_claim!r} or 'sub' claim")
        return Principal(alias=str(alias))
