"""Tests for upstream credential resolution."""
import pytest

from listingsync.errors import UpstreamConfigError
from listingsync.models import AppSetting
from listingsync.services.credentials import UPSTREAM_TOKEN_KEY, UpstreamCredentials


def test_env_token_used_when_no_setting(db_session, settings):
    assert UpstreamCredentials(db_session, settings).token() == "test-token"


def test_stored_setting_wins_over_env(db_session, settings):
    AppSetting.set_value(db_session, UPSTREAM_TOKEN_KEY, "  stored-token ")
    credentials = UpstreamCredentials(db_session, settings)

    assert credentials.token() == "stored-token"
    assert credentials.headers == {"Authorization": "Bearer stored-token"}


def test_token_cached_until_invalidated(db_session, settings):
    credentials = UpstreamCredentials(db_session, settings)
    assert credentials.token() == "test-token"

    AppSetting.set_value(db_session, UPSTREAM_TOKEN_KEY, "rotated")
    assert credentials.token() == "test-token"

    credentials.invalidate()
    assert credentials.token() == "rotated"


def test_missing_token_raises(db_session, settings):
    credentials = UpstreamCredentials(db_session, settings.model_copy(update={"upstream_api_token": "  "}))
    with pytest.raises(UpstreamConfigError, match="not configured"):
        credentials.token()
