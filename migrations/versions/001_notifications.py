"""notifications table.

Revision ID: 001_notifications
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_notifications"
down_revision = None
branch_labels = None
depends_on = None


def _read_sql(name: str) -> str:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / name
    return sql_path.read_text(encoding="utf-8")


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_read_sql("001_notifications.sql"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("DROP TABLE notifications;")
