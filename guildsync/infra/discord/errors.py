# =============================================================================
# File: guildsync/infra/discord/errors.py
# Description: discord.py exception -> GatewayErrorKind translation
# =============================================================================

from __future__ import annotations

import asyncio

import discord

from guildsync.infra.reliability.circuit_breaker import CircuitBreakerOpenError
from guildsync.sync.models import GatewayErrorKind

# Discord JSON error codes for "Unknown <thing>"
UNKNOWN_CHANNEL = 10003
UNKNOWN_GUILD = 10004
UNKNOWN_MEMBER = 10007
UNKNOWN_MESSAGE = 10008
UNKNOWN_ROLE = 10011
UNKNOWN_USER = 10013
CANNOT_DM_USER = 50007
MAX_PINS_REACHED = 30003

UNKNOWN_CODES = frozenset({
    UNKNOWN_CHANNEL, UNKNOWN_GUILD, UNKNOWN_MEMBER, UNKNOWN_MESSAGE, UNKNOWN_ROLE, UNKNOWN_USER,
})


def classify_discord_error(error: BaseException) -> GatewayErrorKind:
    """Map an exception raised around a discord.py call to a failure class."""
    if isinstance(error, CircuitBreakerOpenError):
        return GatewayErrorKind.CIRCUIT_OPEN
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return GatewayErrorKind.TRANSIENT
    if isinstance(error, discord.RateLimited):
        return GatewayErrorKind.RATE_LIMITED
    if isinstance(error, discord.NotFound):
        return GatewayErrorKind.NOT_FOUND
    if isinstance(error, discord.Forbidden):
        return GatewayErrorKind.PERMISSION
    if isinstance(error, discord.DiscordServerError):
        return GatewayErrorKind.TRANSIENT
    if isinstance(error, discord.HTTPException):
        if error.status == 429:
            return GatewayErrorKind.RATE_LIMITED
        if error.code in UNKNOWN_CODES:
            return GatewayErrorKind.NOT_FOUND
        if error.status >= 500:
            return GatewayErrorKind.TRANSIENT
        return GatewayErrorKind.INVALID
    if isinstance(error, (discord.GatewayNotFound, discord.ConnectionClosed, OSError)):
        return GatewayErrorKind.TRANSIENT
    if isinstance(error, (discord.InvalidData, ValueError, TypeError)):
        return GatewayErrorKind.INVALID
    return GatewayErrorKind.TRANSIENT


def describe_discord_error(error: BaseException) -> str:
    if isinstance(error, discord.HTTPException):
        return f"{error.status} {error.text or type(error).__name__} (code {error.code})"
    return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__


def is_transient(error: BaseException) -> bool:
    return classify_discord_error(error).is_transient
