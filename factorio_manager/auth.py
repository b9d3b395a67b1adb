import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException

from .config import settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


class TokenAuth:
    """Bearer-token check for operator endpoints.

    With no token configured every operator request is refused, so the
    trigger endpoints are off unless ``API_TOKEN`` is set.
    """

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token if token is not None else settings.api_token
        if not self.token:
            logger.warning("API_TOKEN is not set; operator endpoints are disabled.")

    def verify(self, authorization: Optional[str]) -> None:
        if not self.token:
            raise HTTPException(status_code=503, detail="Operator API is disabled")
        if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
            raise HTTPException(status_code=401, detail="Missing bearer token")
        provided = authorization[len(BEARER_PREFIX):].strip()
        if not hmac.compare_digest(provided.encode("utf-8"), self.token.encode("utf-8")):
            raise HTTPException(status_code=401, detail="Invalid token")

    def __call__(self, authorization: Optional[str] = Header(None)) -> None:
        self.verify(authorization)
