# =============================================================================
# File: guildsync/infra/read_repos/correlation_repo.py
# Description: PostgreSQL implementation of CorrelationStorePort
# - Tables live in guildsync/database/guildsync.sql
# - Every write is a single-row upsert keyed by the internal entity ID
# =============================================================================

from __future__ import annotations

from typing import Dict, List, Optional

import asyncpg

from guildsync.common.exceptions.exceptions import ConflictError
from guildsync.config.logging_config import get_logger
from guildsync.infra.persistence import pg_client
from guildsync.sync.models import (
    CategoryLink,
    ChannelKind,
    ProjectChannelLink,
    TaskPostingLink,
    TenantChatLink,
)

log = get_logger("guildsync.read_repos.correlation")


def _project_channel(row: asyncpg.Record) -> ProjectChannelLink:
    return ProjectChannelLink(
        project_id=row["project_id"],
        kind=ChannelKind(row["kind"]),
        channel_id=row["channel_id"],
        guild_id=row["guild_id"],
        archived=row["archived"],
    )


def _category(row: asyncpg.Record) -> CategoryLink:
    return CategoryLink(
        tenant_id=row["tenant_id"],
        category_id=row["category_id"],
        external_category_id=row["external_category_id"],
        name=row["name"],
        category_type=row["category_type"],
    )


def _rows_touched(status: str) -> int:
    # asyncpg returns e.g. "UPDATE 3" / "DELETE 1"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class CorrelationRepo:
    """
    Correlation store backed by the guildsync_* tables.

    Stateless; all connection handling goes through pg_client (pool, circuit
    breaker, retry on transient errors).
    """

    # =========================================================================
    # Tenant Links
    # =========================================================================

    async def get_tenant_link(self, tenant_id: str) -> Optional[TenantChatLink]:
        row = await pg_client.fetchrow(
            "SELECT tenant_id, guild_id, linked_at FROM guildsync_tenant_links WHERE tenant_id = $1",
            tenant_id,
        )
        return TenantChatLink(row["tenant_id"], row["guild_id"], row["linked_at"]) if row else None

    async def get_tenant_link_by_guild(self, guild_id: str) -> Optional[TenantChatLink]:
        row = await pg_client.fetchrow(
            "SELECT tenant_id, guild_id, linked_at FROM guildsync_tenant_links WHERE guild_id = $1",
            guild_id,
        )
        return TenantChatLink(row["tenant_id"], row["guild_id"], row["linked_at"]) if row else None

    async def upsert_tenant_link(self, link: TenantChatLink) -> None:
        try:
            await pg_client.execute(
                """
                INSERT INTO guildsync_tenant_links (tenant_id, guild_id, linked_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (tenant_id) DO UPDATE SET guild_id = EXCLUDED.guild_id
                """,
                link.tenant_id, link.guild_id, link.linked_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(f"Guild {link.guild_id} is already linked to another tenant") from e
        log.debug(f"Tenant link stored: {link.tenant_id} -> {link.guild_id}")

    # =========================================================================
    # Project Channel Links
    # =========================================================================

    async def get_project_channels(self, project_id: str) -> Dict[ChannelKind, ProjectChannelLink]:
        rows = await pg_client.fetch(
            """
            SELECT project_id, kind, channel_id, guild_id, archived
            FROM guildsync_project_channels
            WHERE project_id = $1
            """,
            project_id,
        )
        links = [_project_channel(r) for r in rows]
        return {link.kind: link for link in links}

    async def get_project_channel(self, project_id: str, kind: ChannelKind) -> Optional[ProjectChannelLink]:
        row = await pg_client.fetchrow(
            """
            SELECT project_id, kind, channel_id, guild_id, archived
            FROM guildsync_project_channels
            WHERE project_id = $1 AND kind = $2
            """,
            project_id, kind.value,
        )
        return _project_channel(row) if row else None

    async def upsert_project_channel(self, link: ProjectChannelLink) -> None:
        # A recreated channel gets a new id; drop any other row still claiming it first
        async with pg_client.transaction() as conn:
            await conn.execute(
                """
                DELETE FROM guildsync_project_channels
                WHERE channel_id = $1 AND NOT (project_id = $2 AND kind = $3)
                """,
                link.channel_id, link.project_id, link.kind.value,
            )
            await conn.execute(
                """
                INSERT INTO guildsync_project_channels (project_id, kind, channel_id, guild_id, archived)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (project_id, kind) DO UPDATE SET
                    channel_id = EXCLUDED.channel_id,
                    guild_id = EXCLUDED.guild_id,
                    archived = EXCLUDED.archived,
                    updated_at = NOW()
                """,
                link.project_id, link.kind.value, link.channel_id, link.guild_id, link.archived,
            )

    async def mark_project_archived(self, project_id: str, channel_id: Optional[str] = None) -> int:
        if channel_id is None:
            status = await pg_client.execute(
                """
                UPDATE guildsync_project_channels SET archived = TRUE, updated_at = NOW()
                WHERE project_id = $1 AND archived = FALSE
                """,
                project_id,
            )
        else:
            status = await pg_client.execute(
                """
                UPDATE guildsync_project_channels SET archived = TRUE, updated_at = NOW()
                WHERE project_id = $1 AND channel_id = $2 AND archived = FALSE
                """,
                project_id, channel_id,
            )
        return _rows_touched(status)

    async def find_project_by_channel(self, channel_id: str) -> Optional[ProjectChannelLink]:
        row = await pg_client.fetchrow(
            """
            SELECT project_id, kind, channel_id, guild_id, archived
            FROM guildsync_project_channels
            WHERE channel_id = $1
            """,
            channel_id,
        )
        return _project_channel(row) if row else None

    # =========================================================================
    # Task Postings
    # =========================================================================

    async def get_task_posting(self, task_id: str) -> Optional[TaskPostingLink]:
        row = await pg_client.fetchrow(
            "SELECT task_id, message_id, channel_id FROM guildsync_task_postings WHERE task_id = $1",
            task_id,
        )
        return TaskPostingLink(row["task_id"], row["message_id"], row["channel_id"]) if row else None

    async def upsert_task_posting(self, link: TaskPostingLink) -> None:
        await pg_client.execute(
            """
            INSERT INTO guildsync_task_postings (task_id, message_id, channel_id)
            VALUES ($1, $2, $3)
            ON CONFLICT (task_id) DO UPDATE SET
                message_id = EXCLUDED.message_id,
                channel_id = EXCLUDED.channel_id,
                posted_at = NOW()
            """,
            link.task_id, link.message_id, link.channel_id,
        )

    async def delete_task_posting(self, task_id: str) -> bool:
        status = await pg_client.execute(
            "DELETE FROM guildsync_task_postings WHERE task_id = $1", task_id,
        )
        return _rows_touched(status) > 0

    # =========================================================================
    # Category Links
    # =========================================================================

    async def get_category_link(self, tenant_id: str, category_id: str) -> Optional[CategoryLink]:
        row = await pg_client.fetchrow(
            """
            SELECT tenant_id, category_id, external_category_id, name, category_type
            FROM guildsync_category_links
            WHERE tenant_id = $1 AND category_id = $2
            """,
            tenant_id, category_id,
        )
        return _category(row) if row else None

    async def list_category_links(self, tenant_id: str) -> List[CategoryLink]:
        rows = await pg_client.fetch(
            """
            SELECT tenant_id, category_id, external_category_id, name, category_type
            FROM guildsync_category_links
            WHERE tenant_id = $1
            ORDER BY name
            """,
            tenant_id,
        )
        return [_category(r) for r in rows]

    async def upsert_category_link(self, link: CategoryLink) -> None:
        await pg_client.execute(
            """
            INSERT INTO guildsync_category_links
                (tenant_id, category_id, external_category_id, name, category_type)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (tenant_id, category_id) DO UPDATE SET
                external_category_id = EXCLUDED.external_category_id,
                name = EXCLUDED.name,
                category_type = EXCLUDED.category_type,
                updated_at = NOW()
            """,
            link.tenant_id, link.category_id, link.external_category_id, link.name, link.category_type,
        )

    async def delete_category_link(self, tenant_id: str, category_id: str) -> bool:
        status = await pg_client.execute(
            "DELETE FROM guildsync_category_links WHERE tenant_id = $1 AND category_id = $2",
            tenant_id, category_id,
        )
        return _rows_touched(status) > 0

    async def find_category_by_type(self, tenant_id: str, category_type: str) -> Optional[CategoryLink]:
        row = await pg_client.fetchrow(
            """
            SELECT tenant_id, category_id, external_category_id, name, category_type
            FROM guildsync_category_links
            WHERE tenant_id = $1 AND category_type = $2
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            tenant_id, category_type,
        )
        return _category(row) if row else None
