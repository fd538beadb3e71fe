from __future__ import annotations

import asyncio
from types import SimpleNamespace

import discord
import pytest

from guildsync.infra.discord.errors import (
    UNKNOWN_CHANNEL,
    UNKNOWN_MEMBER,
    classify_discord_error,
    describe_discord_error,
    is_transient,
)
from guildsync.infra.reliability.circuit_breaker import CircuitBreakerOpenError
from guildsync.sync.models import GatewayErrorKind


def _response(status: int, reason: str = "") -> SimpleNamespace:
    return SimpleNamespace(status=status, reason=reason)


def _http(cls, status: int, code: int = 0, message: str = ""):
    return cls(_response(status), {"code": code, "message": message})


@pytest.mark.parametrize("error, kind", [
    (_http(discord.NotFound, 404, UNKNOWN_CHANNEL, "Unknown Channel"), GatewayErrorKind.NOT_FOUND),
    (_http(discord.Forbidden, 403, 50013, "Missing Permissions"), GatewayErrorKind.PERMISSION),
    (_http(discord.DiscordServerError, 502), GatewayErrorKind.TRANSIENT),
    (_http(discord.HTTPException, 429), GatewayErrorKind.RATE_LIMITED),
    (_http(discord.HTTPException, 400, UNKNOWN_MEMBER, "Unknown Member"), GatewayErrorKind.NOT_FOUND),
    (_http(discord.HTTPException, 400, 50035, "Invalid Form Body"), GatewayErrorKind.INVALID),
    (discord.RateLimited(3.0), GatewayErrorKind.RATE_LIMITED),
    (CircuitBreakerOpenError("discord open"), GatewayErrorKind.CIRCUIT_OPEN),
    (asyncio.TimeoutError(), GatewayErrorKind.TRANSIENT),
    (ConnectionResetError(), GatewayErrorKind.TRANSIENT),
    (ValueError("bad"), GatewayErrorKind.INVALID),
])
def test_classify(error, kind) -> None:
    assert classify_discord_error(error) is kind


def test_is_transient() -> None:
    assert is_transient(_http(discord.DiscordServerError, 503))
    assert is_transient(CircuitBreakerOpenError("open"))
    assert not is_transient(_http(discord.NotFound, 404, UNKNOWN_CHANNEL, "Unknown Channel"))
    assert not is_transient(_http(discord.Forbidden, 403, 50013, "Missing Permissions"))


def test_describe() -> None:
    error = _http(discord.NotFound, 404, UNKNOWN_CHANNEL, "Unknown Channel")
    assert describe_discord_error(error) == "404 Unknown Channel (code 10003)"
    assert describe_discord_error(ValueError("bad id")) == "ValueError: bad id"
    assert describe_discord_error(asyncio.TimeoutError()) == "TimeoutError"
