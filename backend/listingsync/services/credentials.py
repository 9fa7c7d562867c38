"""
Upstream API credential context.

Resolved per worker invocation: the app_settings table first (so a token
rotated through the API takes effect without a restart), then the
LISTINGSYNC_UPSTREAM_API_TOKEN setting. The value is cached on the instance
until invalidate() is called.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from listingsync.config import Settings, get_settings
from listingsync.errors import UpstreamConfigError
from listingsync.models.app_setting import AppSetting

logger = logging.getLogger(__name__)

UPSTREAM_TOKEN_KEY = "upstream_api_token"


class UpstreamCredentials:

    def __init__(self, db: Optional[Session] = None, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self._token: Optional[str] = None

    def token(self) -> str:
        if self._token is None:
            self._token = self._resolve()
        if not self._token:
            raise UpstreamConfigError(
                "Upstream API token is not configured. Set LISTINGSYNC_UPSTREAM_API_TOKEN "
                f"or the '{UPSTREAM_TOKEN_KEY}' setting."
            )
        return self._token

    def invalidate(self) -> None:
        self._token = None

    def _resolve(self) -> Optional[str]:
        if self.db is not None:
            db_value = AppSetting.get_value(self.db, UPSTREAM_TOKEN_KEY)
            if db_value and db_value.strip():
                return db_value.strip()

        env_value = self.settings.upstream_api_token
        if env_value and env_value.strip():
            return env_value.strip()

        return None

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token()}"}
