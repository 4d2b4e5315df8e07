"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from stockshorts.core.config import Settings
from stockshorts.models.schemas import Privacy


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.default_privacy == Privacy.PUBLIC
    assert settings.run_overlap_policy == "reject"
    assert settings.oauth_redirect_uri == "http://localhost:3000/oauth2callback"


def test_values_read_from_environment(monkeypatch):
    monkeypatch.setenv("DEFAULT_PRIVACY", "unlisted")
    monkeypatch.setenv("RUN_OVERLAP_POLICY", "allow")

    settings = Settings(_env_file=None)

    assert settings.default_privacy == Privacy.UNLISTED
    assert settings.run_overlap_policy == "allow"


def test_overlap_policy_typo_rejected(monkeypatch):
    monkeypatch.setenv("RUN_OVERLAP_POLICY", "rejct")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_unknown_privacy_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, default_privacy="friends-only")
