# =============================================================================
# File: guildsync/sync/events.py
# Description: Inbound sync event payloads, topic registry and envelope parsing
# =============================================================================
"""
The web app publishes one JSON message per change on ``discord:<topic>``.

Two wire shapes are accepted:

- an envelope ``{"topic": "...", "payload": {...}}``
- a bare payload, whose topic is the channel name minus the prefix

Field names are the publisher's camelCase; models expose snake_case.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any, Dict, List, NamedTuple, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from guildsync.common.exceptions.exceptions import ValidationError
from guildsync.sync.models import CategorySpec


class MalformedEventError(ValidationError):
    """Raised when an inbound message cannot become a typed event"""
    pass


# =============================================================================
# Base
# =============================================================================

class SyncPayload(BaseModel):
    """Base for all inbound payloads"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def entity_key(self) -> str:
        """Serialization key: events sharing a key never reconcile concurrently"""
        raise NotImplementedError


class _TenantScoped(SyncPayload):
    tenant_id: str = Field(alias="tenantId")


# =============================================================================
# Users
# =============================================================================

class UserLinked(_TenantScoped):
    user_id: str = Field(alias="userId")
    discord_user_id: str = Field(alias="discordUserId")
    discord_username: Optional[str] = Field(default=None, alias="discordUsername")

    def entity_key(self) -> str:
        return f"user:{self.user_id}"


class UserUnlinked(_TenantScoped):
    user_id: str = Field(alias="userId")
    discord_user_id: str = Field(alias="discordUserId")

    def entity_key(self) -> str:
        return f"user:{self.user_id}"


class UserRoleChanged(_TenantScoped):
    user_id: str = Field(alias="userId")
    discord_user_id: str = Field(alias="discordUserId")
    new_role: str = Field(alias="newRole")

    def entity_key(self) -> str:
        return f"user:{self.user_id}"


class UserDeactivated(_TenantScoped):
    user_id: str = Field(alias="userId")
    discord_user_id: str = Field(alias="discordUserId")

    def entity_key(self) -> str:
        return f"user:{self.user_id}"


# =============================================================================
# Projects
# =============================================================================

class ProjectCreated(_TenantScoped):
    project_id: str = Field(alias="projectId")
    name: str

    def entity_key(self) -> str:
        return f"project:{self.project_id}"


class ProjectArchived(_TenantScoped):
    project_id: str = Field(alias="projectId")
    channel_id: Optional[str] = Field(default=None, alias="channelId")

    def entity_key(self) -> str:
        return f"project:{self.project_id}"


class ProjectMemberAdded(_TenantScoped):
    project_id: str = Field(alias="projectId")
    user_id: str = Field(alias="userId")
    discord_user_id: Optional[str] = Field(default=None, alias="discordUserId")

    def entity_key(self) -> str:
        return f"project:{self.project_id}"


class ProjectMemberRemoved(_TenantScoped):
    project_id: str = Field(alias="projectId")
    user_id: str = Field(alias="userId")
    discord_user_id: Optional[str] = Field(default=None, alias="discordUserId")

    def entity_key(self) -> str:
        return f"project:{self.project_id}"


# =============================================================================
# Categories
# =============================================================================

class CategoryCreated(_TenantScoped):
    category_id: str = Field(alias="categoryId")
    name: str
    type: Optional[str] = None

    def entity_key(self) -> str:
        return f"categories:{self.tenant_id}"


class CategoryDeleted(_TenantScoped):
    category_id: str = Field(alias="categoryId")
    discord_category_id: Optional[str] = Field(default=None, alias="discordCategoryId")

    def entity_key(self) -> str:
        return f"categories:{self.tenant_id}"


class CategorySyncItem(SyncPayload):
    id: str
    name: str
    type: Optional[str] = None
    discord_category_id: Optional[str] = Field(default=None, alias="discordCategoryId")

    def to_spec(self) -> CategorySpec:
        return CategorySpec(self.id, self.name, self.type, self.discord_category_id)


class CategorySync(_TenantScoped):
    guild_id: str = Field(alias="guildId")
    categories: List[CategorySyncItem] = Field(default_factory=list)

    def entity_key(self) -> str:
        return f"categories:{self.tenant_id}"


# =============================================================================
# Tasks
# =============================================================================

class _TaskEvent(_TenantScoped):
    task_id: str = Field(alias="taskId")
    project_id: str = Field(alias="projectId")

    def entity_key(self) -> str:
        return f"task:{self.task_id}"


class TaskCreated(_TaskEvent):
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None
    deadline: Optional[date] = None
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    created_by_name: Optional[str] = Field(default=None, alias="createdByName")


class TaskUpdated(_TaskEvent):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    deadline: Optional[date] = None
    updated_by_name: Optional[str] = Field(default=None, alias="updatedByName")


class TaskDeleted(_TaskEvent):
    title: Optional[str] = None


class TaskAssigned(_TaskEvent):
    assignee_user_id: str = Field(alias="assigneeUserId")
    assignee_name: Optional[str] = Field(default=None, alias="assigneeName")
    task_title: Optional[str] = Field(default=None, alias="taskTitle")


class TaskCompleted(_TaskEvent):
    completed_by: Optional[str] = Field(default=None, alias="completedBy")
    completed_by_name: Optional[str] = Field(default=None, alias="completedByName")
    task_title: Optional[str] = Field(default=None, alias="taskTitle")


# =============================================================================
# Activity
# =============================================================================

class CommentAdded(_TaskEvent):
    comment_id: str = Field(alias="commentId")
    author_name: str = Field(alias="authorName")
    preview: str = ""
    task_title: Optional[str] = Field(default=None, alias="taskTitle")

    def entity_key(self) -> str:
        return f"comment:{self.comment_id}"


class FileUploaded(_TenantScoped):
    file_id: str = Field(alias="fileId")
    project_id: str = Field(alias="projectId")
    file_name: str = Field(alias="fileName")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    uploaded_by_name: Optional[str] = Field(default=None, alias="uploadedByName")

    def entity_key(self) -> str:
        return f"file:{self.file_id}"


class TimeLogged(_TenantScoped):
    time_entry_id: str = Field(alias="timeEntryId")
    project_id: str = Field(alias="projectId")
    minutes: int = Field(ge=0)
    date: str
    description: Optional[str] = None
    task_title: Optional[str] = Field(default=None, alias="taskTitle")
    user_name: Optional[str] = Field(default=None, alias="userName")

    def entity_key(self) -> str:
        return f"time:{self.time_entry_id}"


# =============================================================================
# Request / Response
# =============================================================================

class VerifyGuild(SyncPayload):
    request_id: str = Field(alias="requestId")
    guild_id: str = Field(alias="guildId")

    def entity_key(self) -> str:
        return f"guild:{self.guild_id}"


VERIFY_RESPONSE_TOPIC = "verify-response"


# =============================================================================
# Registry
# =============================================================================

TOPIC_PAYLOADS: Dict[str, Type[SyncPayload]] = {
    "user-linked": UserLinked,
    "user-unlinked": UserUnlinked,
    "user-role-changed": UserRoleChanged,
    "user-deactivated": UserDeactivated,
    "project-created": ProjectCreated,
    "project-archived": ProjectArchived,
    "project-member-added": ProjectMemberAdded,
    "project-member-removed": ProjectMemberRemoved,
    "category-created": CategoryCreated,
    "category-deleted": CategoryDeleted,
    "category-sync": CategorySync,
    "task-created": TaskCreated,
    "task-updated": TaskUpdated,
    "task-deleted": TaskDeleted,
    "task-assigned": TaskAssigned,
    "task-completed": TaskCompleted,
    "comment-added": CommentAdded,
    "file-uploaded": FileUploaded,
    "time-logged": TimeLogged,
    "verify-guild": VerifyGuild,
}

TOPICS = tuple(TOPIC_PAYLOADS)


def channel_for(topic: str, prefix: str = "discord:") -> str:
    return f"{prefix}{topic}"


# =============================================================================
# Envelope
# =============================================================================

class SyncEvent(NamedTuple):
    """A validated inbound event"""
    topic: str
    payload: SyncPayload
    raw: Dict[str, Any]

    @property
    def entity_key(self) -> str:
        return self.payload.entity_key()

    def to_envelope(self) -> Dict[str, Any]:
        return {"topic": self.topic, "payload": self.raw}


def _topic_from_channel(channel: str, prefix: str) -> Optional[str]:
    if channel and channel.startswith(prefix):
        return channel[len(prefix):]
    return None


def parse_envelope(channel: str, raw: Any, prefix: str = "discord:") -> SyncEvent:
    """
    Turn one pub/sub message into a typed event.

    Raises:
        MalformedEventError: invalid JSON, unknown topic or failed validation
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedEventError(f"invalid JSON on {channel}: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise MalformedEventError(f"expected a JSON object on {channel}, got {type(data).__name__}")

    if isinstance(data.get("topic"), str) and isinstance(data.get("payload"), dict):
        topic = data["topic"]
        body = data["payload"]
    else:
        topic = _topic_from_channel(channel, prefix)
        body = data

    model = TOPIC_PAYLOADS.get(topic or "")
    if model is None:
        raise MalformedEventError(f"unknown topic {topic!r} on {channel}")

    try:
        payload = model.model_validate(body)
    except PydanticValidationError as e:
        raise MalformedEventError(f"invalid {topic} payload: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e

    return SyncEvent(topic, payload, body)
