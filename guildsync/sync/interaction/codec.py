# =============================================================================
# File: guildsync/sync/interaction/codec.py
# Description: Workflow state carried in Discord component custom_ids
# =============================================================================
"""
Interaction tokens are the only state kept between two Discord round-trips.

Format: ``{prefix}{id1},{id2},...``. Zero-arity verbs encode to the bare
prefix. IDs are restricted to ``[A-Za-z0-9-]`` so neither the ``_`` in verb
prefixes nor the ``,`` delimiter can appear inside an ID.

``decode`` is total: anything it does not recognise (foreign components,
truncated tokens, tampered IDs) decodes to ``InteractionVerb.NOOP``.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import List, NamedTuple, Sequence, Tuple

from guildsync.common.exceptions.exceptions import InteractionTokenError

CUSTOM_ID_MAX_LENGTH = 100
ID_DELIMITER = ","
VARIADIC = -1

_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


class InteractionVerb(Enum):
    """Verb vocabulary: (custom_id prefix, arity)"""

    TASK_VIEW = ("task_view_", 1)
    TASK_COMPLETE = ("task_complete_", 1)
    TASK_ASSIGN = ("task_assign_", 1)
    ASSIGN_USER = ("assign_user_", 1)
    TASK_PIN = ("task_pin_", 1)
    TIME_LOG = ("time_log_", 1)
    TIME_LOG_MODAL = ("time_log_modal_", 1)
    TASK_CREATE = ("task_create_", 1)
    TASK_CREATE_MODAL = ("task_create_modal_", 1)
    NOTE_CREATE = ("note_create_", 1)
    NOTE_CREATE_MODAL = ("note_create_modal_", 1)
    START_ONBOARDING = ("start_onboarding", 0)
    SELECT_PROJECTS = ("select_projects_for_sync", 0)
    CONFIRM_SYNC = ("confirm_sync_", VARIADIC)
    CANCEL_SYNC = ("cancel_sync", 0)
    NOOP = ("", 0)

    def __init__(self, prefix: str, arity: int):
        self.prefix = prefix
        self.arity = arity


class DecodedToken(NamedTuple):
    verb: InteractionVerb
    ids: Tuple[str, ...] = ()


NOOP_TOKEN = DecodedToken(InteractionVerb.NOOP)

# Longest prefix first so "time_log_modal_" wins over "time_log_"
_DECODE_ORDER: Tuple[InteractionVerb, ...] = tuple(sorted(
    (v for v in InteractionVerb if v is not InteractionVerb.NOOP),
    key=lambda v: len(v.prefix),
    reverse=True,
))


def is_valid_id(value: str) -> bool:
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def _check_arity(verb: InteractionVerb, count: int) -> bool:
    if verb.arity == VARIADIC:
        return count >= 1
    return count == verb.arity


def encode(verb: InteractionVerb, ids: Sequence[str] = (), max_length: int = CUSTOM_ID_MAX_LENGTH) -> str:
    """
    Encode a verb and its IDs into a custom_id.

    Raises:
        InteractionTokenError: NOOP verb, wrong arity, an ID outside
            ``[A-Za-z0-9-]`` or a token longer than ``max_length``
    """
    if verb is InteractionVerb.NOOP:
        raise InteractionTokenError("NOOP cannot be encoded")

    ids = list(ids)
    if not _check_arity(verb, len(ids)):
        raise InteractionTokenError(f"{verb.name} takes {verb.arity} id(s), got {len(ids)}")

    for value in ids:
        if not is_valid_id(value):
            raise InteractionTokenError(f"Invalid id for {verb.name}: {value!r}")

    token = verb.prefix + ID_DELIMITER.join(ids)
    if len(token) > max_length:
        raise InteractionTokenError(
            f"Token for {verb.name} is {len(token)} chars, limit is {max_length}"
        )
    return token


def pack(verb: InteractionVerb, ids: Sequence[str],
         max_length: int = CUSTOM_ID_MAX_LENGTH) -> Tuple[str, List[str]]:
    """
    Fit as many leading IDs as the length limit allows.

    Returns the token and the IDs that did not fit. Raises
    ``InteractionTokenError`` if not even the first ID fits.
    """
    ids = list(ids)
    if verb.arity != VARIADIC:
        return encode(verb, ids, max_length), []

    if not ids:
        raise InteractionTokenError(f"{verb.name} needs at least one id")

    for value in ids:
        if not is_valid_id(value):
            raise InteractionTokenError(f"Invalid id for {verb.name}: {value!r}")

    length = len(verb.prefix)
    fitted: List[str] = []
    for value in ids:
        extra = len(value) + (len(ID_DELIMITER) if fitted else 0)
        if length + extra > max_length:
            break
        fitted.append(value)
        length += extra

    if not fitted:
        raise InteractionTokenError(f"First id does not fit into a {verb.name} token")

    return encode(verb, fitted, max_length), ids[len(fitted):]


def decode(token: str) -> DecodedToken:
    """Decode a custom_id. Never raises; unknown input yields the NOOP token."""
    if not isinstance(token, str) or not token:
        return NOOP_TOKEN

    for verb in _DECODE_ORDER:
        if not token.startswith(verb.prefix):
            continue

        if verb.arity == 0:
            return DecodedToken(verb) if token == verb.prefix else NOOP_TOKEN

        rest = token[len(verb.prefix):]
        ids = rest.split(ID_DELIMITER) if rest else []
        if not _check_arity(verb, len(ids)) or not all(is_valid_id(v) for v in ids):
            return NOOP_TOKEN
        return DecodedToken(verb, tuple(ids))

    return NOOP_TOKEN
