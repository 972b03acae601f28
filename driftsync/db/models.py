from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SchemaMigration(Base):
    """Append-only record of a migration file applied to one environment."""

    __tablename__ = "schema_migrations"
    __table_args__ = (UniqueConstraint("migration_id", name="uq_schema_migrations_migration_id"),)
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    environment: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"SchemaMigration(migration_id={self.migration_id!r}, environment={self.environment!r})"
