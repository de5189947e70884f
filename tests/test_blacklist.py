"""Tests for the access token blacklist."""

import json
from datetime import timedelta

import pytest

from medicalink.service.blacklist import TokenBlacklist


@pytest.fixture
def blacklist(cache, clock):
    return TokenBlacklist(cache, clock=clock.utcnow)


class TestBlacklist:
    async def test_blacklisted_until_token_expiry(self, blacklist, clock):
        expires_at = clock.utcnow() + timedelta(seconds=90)

        assert await blacklist.blacklist("tok", expires_at, "user logout") is True
        assert await blacklist.is_blacklisted("tok") is True

        clock.advance(90)
        assert await blacklist.is_blacklisted("tok") is False

    async def test_entry_shape(self, blacklist, clock, fake_redis):
        await blacklist.blacklist("tok", clock.utcnow() + timedelta(seconds=60), "user logout")

        entry = json.loads(fake_redis.data["medicalink:blacklist:tok"])
        assert entry["token"] == "tok"
        assert entry["reason"] == "user logout"
        assert "expiresAt" in entry

    @pytest.mark.parametrize("offset", [0, -1, -3600])
    async def test_already_expired_token_is_noop(self, blacklist, clock, fake_redis, offset):
        expires_at = clock.utcnow() + timedelta(seconds=offset)

        assert await blacklist.blacklist("old", expires_at) is True
        assert await blacklist.is_blacklisted("old") is False
        assert "set" not in fake_redis.commands

    async def test_unknown_token_not_blacklisted(self, blacklist):
        assert await blacklist.is_blacklisted("fresh") is False
