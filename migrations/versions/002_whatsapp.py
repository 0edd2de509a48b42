"""whatsapp conversations, messages and templates.

Revision ID: 002_whatsapp
Revises: 001_notifications
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "002_whatsapp"
down_revision = "001_notifications"
branch_labels = None
depends_on = None


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "002_whatsapp.sql"
    conn = op.get_bind()
    conn.exec_driver_sql(sql_path.read_text(encoding="utf-8"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        "DROP TABLE whatsapp_messages; DROP TABLE whatsapp_conversations; DROP TABLE whatsapp_templates;"
    )
