"""Initial schema: messages, api_keys, webhooks (SQL-only).

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

UPGRADE_SQL = """
CREATE TABLE IF NOT EXISTS messages (
    id           SERIAL PRIMARY KEY,
    direction    TEXT NOT NULL CHECK (direction IN ('incoming', 'outgoing')),
    phone        TEXT NOT NULL,
    sender_name  TEXT,
    message      TEXT NOT NULL DEFAULT '',
    reply_status TEXT NOT NULL DEFAULT 'unread'
                 CHECK (reply_status IN ('unread', 'replied', 'ignored', 'sent')),
    media_type   TEXT CHECK (media_type IN ('text', 'image')),
    media_url    TEXT,
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_reply_status ON messages (reply_status);
CREATE INDEX IF NOT EXISTS idx_messages_phone ON messages (phone);
CREATE INDEX IF NOT EXISTS idx_messages_created_at ON messages (created_at);

-- One row at most: the singleton column can only ever be TRUE
CREATE TABLE IF NOT EXISTS api_keys (
    singleton  BOOLEAN PRIMARY KEY DEFAULT TRUE CHECK (singleton),
    key        TEXT NOT NULL UNIQUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS webhooks (
    id         SERIAL PRIMARY KEY,
    url        TEXT NOT NULL,
    event      TEXT NOT NULL DEFAULT 'message.received',
    active     BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_webhooks_event_active ON webhooks (event, active);
"""

DOWNGRADE_SQL = """
DROP TABLE IF EXISTS webhooks;
DROP TABLE IF EXISTS api_keys;
DROP TABLE IF EXISTS messages;
"""


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(UPGRADE_SQL)


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(DOWNGRADE_SQL)
