"""Installation records and the per-tenant records that depend on them.

SQLAlchemy async ORM over any async driver (aiosqlite by default). The
installation row is the tenant; sessions, email aliases, verified senders
and the email log all reference it by installation_id and are removed with
it.

Timestamps are stored as ISO 8601 text in UTC.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import Integer, Text, delete, func, select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .models import Installation

logger = logging.getLogger("repo_mirror.records")

__all__ = [
    "Base",
    "DEPENDENT_TABLES",
    "EmailAlias",
    "EmailLogEntry",
    "InstallationRow",
    "RecordStore",
    "SessionRow",
    "VerifiedSender",
]


def format_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Base(DeclarativeBase):
    pass


class InstallationRow(Base):
    """One connected repository (tenant)."""

    __tablename__ = "installations"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    github_installation_id: Mapped[int] = mapped_column(Integer, nullable=False)
    repo_full_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    account_login: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    last_sync_at: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_model(self) -> Installation:
        return Installation(
            id=self.id,
            github_installation_id=self.github_installation_id,
            repo_full_name=self.repo_full_name,
            account_login=self.account_login,
            created_at=parse_iso(self.created_at),
            last_sync_at=parse_iso(self.last_sync_at),
        )


class SessionRow(Base):
    """Client session bound to a tenant."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    installation_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[str | None] = mapped_column(Text, nullable=True)


class EmailAlias(Base):
    """Inbound address routed to a tenant's inbox."""

    __tablename__ = "email_aliases"

    alias: Mapped[str] = mapped_column(Text, primary_key=True)
    installation_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)


class VerifiedSender(Base):
    """Sender address allowed to write into a tenant's inbox."""

    __tablename__ = "verified_senders"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    installation_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    confirmed_at: Mapped[str | None] = mapped_column(Text, nullable=True)


class EmailLogEntry(Base):
    """Inbound email event log."""

    __tablename__ = "email_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    installation_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    received_at: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


# Cleanup order on tenant deletion; each is its own transaction
DEPENDENT_TABLES = (SessionRow, EmailAlias, VerifiedSender, EmailLogEntry)


class RecordStore:
    """Async access to installation and dependent records.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Session factory bound to the engine
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.engine: AsyncEngine = create_async_engine(database_url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    async def add_installation(self, installation: Installation) -> None:
        async with self.session_factory() as session:
            session.add(
                InstallationRow(
                    id=installation.id,
                    github_installation_id=installation.github_installation_id,
                    repo_full_name=installation.repo_full_name,
                    account_login=installation.account_login,
                    created_at=format_iso(installation.created_at),
                    last_sync_at=(
                        format_iso(installation.last_sync_at)
                        if installation.last_sync_at
                        else None
                    ),
                )
            )
            await session.commit()

    async def get_installation(self, tenant_id: str) -> Installation | None:
        async with self.session_factory() as session:
            row = await session.get(InstallationRow, tenant_id)
            return row.to_model() if row else None

    async def find_by_repository(self, repo_full_name: str) -> list[Installation]:
        """All tenants mirroring a repository (case-insensitive owner/repo)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(InstallationRow)
                .where(func.lower(InstallationRow.repo_full_name) == repo_full_name.lower())
                .order_by(InstallationRow.created_at)
            )
            return [row.to_model() for row in result.scalars().all()]

    async def mark_synced(self, tenant_id: str, at: datetime) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(InstallationRow)
                .where(InstallationRow.id == tenant_id)
                .values(last_sync_at=format_iso(at))
            )
            await session.commit()

    async def delete_dependents(self, tenant_id: str) -> dict[str, str]:
        """Delete every dependent record of a tenant, table by table.

        Each table is cleaned in its own transaction; a failure is logged and
        reported as that table's status without stopping the others.

        Returns:
            {table name: "ok" | "error: <reason>"}
        """
        statuses: dict[str, str] = {}
        for table in DEPENDENT_TABLES:
            name = table.__tablename__
            try:
                async with self.session_factory() as session:
                    result = await session.execute(
                        delete(table).where(table.installation_id == tenant_id)
                    )
                    await session.commit()
                statuses[name] = "ok"
                logger.debug(
                    "dependent_records_deleted",
                    extra={"tenant_id": tenant_id, "table": name, "rows": result.rowcount},
                )
            except Exception as e:
                statuses[name] = f"error: {e}"
                logger.error(
                    "dependent_records_delete_failed",
                    extra={"tenant_id": tenant_id, "table": name, "error": str(e)},
                )
        return statuses

    async def delete_installation(self, tenant_id: str) -> bool:
        """Delete the installation row; False if it did not exist."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(InstallationRow).where(InstallationRow.id == tenant_id)
            )
            await session.commit()
            return result.rowcount > 0
