"""Table models for BotBox records and archived jobs."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text

metadata = MetaData()

botboxes = Table(
    "botboxes",
    metadata,
    Column("id", String(26), primary_key=True),
    Column("name", String(256), nullable=False),
    Column("payload_json", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

archived_jobs = Table(
    "archived_jobs",
    metadata,
    Column("job_id", String(26), primary_key=True),
    Column("deployment_id", String(26), nullable=False, index=True),
    Column("status", String(16), nullable=False),
    Column("retry_count", Integer, nullable=False),
    Column("payload_json", Text, nullable=False),
    Column("archived_at", DateTime(timezone=True), nullable=False),
)
