# =============================================================================
# File: guildsync/infra/read_repos/web_app_repo.py
# Description: WebAppPort over the web application's PostgreSQL tables
# - Table and column names follow the web app's Prisma schema (quoted
#   PascalCase tables, camelCase columns)
# - Writes mirror what the web app itself does for the same user action
# =============================================================================

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

import asyncpg

from guildsync.common.exceptions.exceptions import NotFoundError
from guildsync.config.logging_config import get_logger
from guildsync.infra.persistence import pg_client
from guildsync.sync.models import (
    ProjectMemberRecord,
    ProjectRecord,
    TaskRecord,
    TenantRecord,
    UserRecord,
)

log = get_logger("guildsync.read_repos.web_app")

DISCORD_PROVIDER = "discord"

_TASK_SELECT = """
    SELECT t."id", t."projectId", t."title", t."description", t."status", t."priority",
           t."deadline", p."name" AS "projectName", p."tenantId",
           COALESCE(
               (SELECT array_agg(u."name" ORDER BY u."name")
                FROM "TaskAssignment" ta
                JOIN "Membership" m ON m."id" = ta."membershipId"
                JOIN "User" u ON u."id" = m."userId"
                WHERE ta."taskId" = t."id"),
               ARRAY[]::text[]
           ) AS "assignees"
    FROM "Task" t
    JOIN "Project" p ON p."id" = t."projectId"
"""


def _new_id() -> str:
    return uuid.uuid4().hex


def _task(row: asyncpg.Record) -> TaskRecord:
    deadline = row["deadline"]
    if isinstance(deadline, datetime):
        deadline = deadline.date()
    return TaskRecord(
        id=row["id"],
        project_id=row["projectId"],
        title=row["title"],
        project_name=row["projectName"],
        tenant_id=row["tenantId"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        deadline=deadline,
        assignees=tuple(n for n in row["assignees"] if n),
    )


def _project(row: asyncpg.Record) -> ProjectRecord:
    return ProjectRecord(
        id=row["id"],
        tenant_id=row["tenantId"],
        name=row["name"],
        status=row["status"],
        address=row["address"],
    )


class WebAppRepo:
    """
    Web application data as seen by the sync service.

    Reads return None for unknown ids. Writes raise NotFoundError when the
    entity they act on is gone.
    """

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_tenant(self, tenant_id: str) -> Optional[TenantRecord]:
        row = await pg_client.fetchrow('SELECT "id", "name" FROM "Tenant" WHERE "id" = $1', tenant_id)
        return TenantRecord(row["id"], row["name"]) if row else None

    async def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        row = await pg_client.fetchrow(
            'SELECT "id", "tenantId", "name", "status", "address" FROM "Project" WHERE "id" = $1',
            project_id,
        )
        return _project(row) if row else None

    async def list_tenant_projects(
        self,
        tenant_id: str,
        status: Optional[str] = "ACTIVE",
        limit: int = 25,
    ) -> List[ProjectRecord]:
        rows = await pg_client.fetch(
            """
            SELECT "id", "tenantId", "name", "status", "address"
            FROM "Project"
            WHERE "tenantId" = $1 AND ($2::text IS NULL OR "status"::text = $2)
            ORDER BY "name"
            LIMIT $3
            """,
            tenant_id, status, limit,
        )
        return [_project(r) for r in rows]

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        row = await pg_client.fetchrow(_TASK_SELECT + ' WHERE t."id" = $1', task_id)
        return _task(row) if row else None

    async def get_membership_role(self, user_id: str, tenant_id: Optional[str] = None) -> Optional[str]:
        role = await pg_client.fetchval(
            """
            SELECT "role"::text FROM "Membership"
            WHERE "userId" = $1 AND ($2::text IS NULL OR "tenantId" = $2)
            ORDER BY "createdAt"
            LIMIT 1
            """,
            user_id, tenant_id,
        )
        return role

    async def get_linked_external_id(self, user_id: str) -> Optional[str]:
        return await pg_client.fetchval(
            'SELECT "providerAccountId" FROM "Account" WHERE "userId" = $1 AND "provider" = $2 LIMIT 1',
            user_id, DISCORD_PROVIDER,
        )

    async def find_user_by_external_id(
        self,
        external_id: str,
        tenant_id: Optional[str] = None,
    ) -> Optional[UserRecord]:
        row = await pg_client.fetchrow(
            """
            SELECT u."id", u."name", m."tenantId", m."role"::text AS "role"
            FROM "Account" a
            JOIN "User" u ON u."id" = a."userId"
            LEFT JOIN "Membership" m
                ON m."userId" = u."id" AND ($3::text IS NULL OR m."tenantId" = $3)
            WHERE a."provider" = $1 AND a."providerAccountId" = $2
              AND ($3::text IS NULL OR m."tenantId" IS NOT NULL)
            ORDER BY m."createdAt" NULLS LAST
            LIMIT 1
            """,
            DISCORD_PROVIDER, external_id, tenant_id,
        )
        if row is None:
            return None
        return UserRecord(
            id=row["id"],
            name=row["name"] or "Okänd",
            tenant_id=row["tenantId"],
            role=row["role"],
        )

    async def list_project_members(self, project_id: str) -> List[ProjectMemberRecord]:
        rows = await pg_client.fetch(
            """
            SELECT u."id", u."name", a."providerAccountId"
            FROM "ProjectMember" pm
            JOIN "Membership" m ON m."id" = pm."membershipId"
            JOIN "User" u ON u."id" = m."userId"
            LEFT JOIN "Account" a ON a."userId" = u."id" AND a."provider" = $2
            WHERE pm."projectId" = $1
            ORDER BY u."name"
            """,
            project_id, DISCORD_PROVIDER,
        )
        return [
            ProjectMemberRecord(user_id=r["id"], name=r["name"] or "Okänd", discord_user_id=r["providerAccountId"])
            for r in rows
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    async def complete_task(self, task_id: str, user_id: str) -> TaskRecord:
        status = await pg_client.execute(
            """UPDATE "Task" SET "status" = 'DONE', "updatedAt" = NOW() WHERE "id" = $1""",
            task_id,
        )
        if status.endswith(" 0"):
            raise NotFoundError(f"Task {task_id} not found")
        log.info(f"Task {task_id} marked done by {user_id}")
        task = await self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    async def assign_task(self, task_id: str, assignee_user_id: str, actor_id: str) -> TaskRecord:
        membership_id = await pg_client.fetchval(
            """
            SELECT m."id"
            FROM "Task" t
            JOIN "Project" p ON p."id" = t."projectId"
            JOIN "ProjectMember" pm ON pm."projectId" = p."id"
            JOIN "Membership" m ON m."id" = pm."membershipId"
            WHERE t."id" = $1 AND m."userId" = $2
            LIMIT 1
            """,
            task_id, assignee_user_id,
        )
        if membership_id is None:
            raise NotFoundError(f"User {assignee_user_id} is not a member of the project of task {task_id}")

        await pg_client.execute(
            """
            INSERT INTO "TaskAssignment" ("id", "taskId", "membershipId", "createdAt")
            VALUES ($1, $2, $3, NOW())
            ON CONFLICT ("taskId", "membershipId") DO NOTHING
            """,
            _new_id(), task_id, membership_id,
        )
        log.info(f"Task {task_id} assigned to {assignee_user_id} by {actor_id}")
        task = await self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    async def create_time_entry(
        self,
        task_id: str,
        user_id: str,
        minutes: int,
        entry_date: date,
        description: Optional[str] = None,
    ) -> str:
        task = await self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")

        entry_id = _new_id()
        entry_at = datetime(entry_date.year, entry_date.month, entry_date.day, tzinfo=timezone.utc)
        await pg_client.execute(
            """
            INSERT INTO "TimeEntry" (
                "id", "description", "minutes", "date", "taskId", "projectId",
                "userId", "tenantId", "entryType", "createdAt", "updatedAt"
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, 'WORK', NOW(), NOW())
            """,
            entry_id, description, minutes, entry_at, task.id, task.project_id, user_id, task.tenant_id,
        )
        log.info(f"Time entry {entry_id}: {minutes} min on task {task_id} by {user_id}")
        return entry_id

    async def create_task(
        self,
        project_id: str,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        deadline: Optional[date] = None,
    ) -> TaskRecord:
        project = await self.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        task_id = _new_id()
        deadline_at = (
            datetime(deadline.year, deadline.month, deadline.day, tzinfo=timezone.utc) if deadline else None
        )
        await pg_client.execute(
            """
            INSERT INTO "Task" (
                "id", "title", "description", "deadline", "projectId",
                "status", "priority", "createdAt", "updatedAt"
            ) VALUES ($1, $2, $3, $4, $5, 'TODO', 'MEDIUM', NOW(), NOW())
            """,
            task_id, title, description, deadline_at, project.id,
        )
        log.info(f"Task {task_id} created in project {project_id} by {user_id}")
        return TaskRecord(
            id=task_id,
            project_id=project.id,
            title=title,
            project_name=project.name,
            tenant_id=project.tenant_id,
            description=description,
            status="TODO",
            priority="MEDIUM",
            deadline=deadline,
        )

    async def create_note(self, project_id: str, user_id: str, title: str, content: str) -> str:
        project = await self.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        note_id = _new_id()
        await pg_client.execute(
            """
            INSERT INTO "Note" ("id", "title", "content", "projectId", "createdById", "createdAt", "updatedAt")
            VALUES ($1, $2, $3, $4, $5, NOW(), NOW())
            """,
            note_id, title, content, project.id, user_id,
        )
        log.info(f"Note {note_id} created in project {project_id} by {user_id}")
        return note_id
