from typing import Any, Dict

import jwt

from journeylog.config import settings


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify a token issued by the auth provider. Raises ``jwt.InvalidTokenError``."""
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")
    return payload

