"""
Signed session tokens for admin and school principals.

Tokens are HS256 JWTs bound to the principal's row id and role, with an
expiry. They are verified without a database lookup; callers performing
privileged work still confirm that the principal exists.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from study_buddy import config
from study_buddy.errors import AuthError

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_SCHOOL = "school"


class SessionTokenService:
    """Issue and verify session tokens."""

    def __init__(
        self,
        secret: Optional[str] = None,
        ttl_hours: int = config.SESSION_TOKEN_TTL_HOURS,
        algorithm: str = config.SESSION_TOKEN_ALGORITHM,
    ):
        secret = secret or config.SESSION_TOKEN_SECRET
        if not secret:
            raise ValueError("SESSION_TOKEN_SECRET must be set in environment")
        self._secret = secret
        self.ttl = timedelta(hours=ttl_hours)
        self.algorithm = algorithm

    def issue(self, principal_id: str, role: str, identifier: Optional[str] = None) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(principal_id),
            "role": role,
            "identifier": identifier,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(
        self,
        token: Optional[str],
        role: Optional[str] = None,
        subject: Optional[str] = None,
        error_message: str = "Invalid session",
    ) -> Dict[str, Any]:
        """
        Decode `token` and check its role and subject.

        Raises:
            AuthError: if the token is missing, malformed, expired, or issued
                for a different role or principal.
        """
        if not token:
            raise AuthError(error_message)

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.info("[SessionTokens] Expired token presented")
            raise AuthError(error_message)
        except JWTError as e:
            logger.warning(f"[SessionTokens] Rejected token: {e}")
            raise AuthError(error_message)

        if role is not None and claims.get("role") != role:
            raise AuthError(error_message)
        if subject is not None and claims.get("sub") != str(subject):
            raise AuthError(error_message)

        return claims
