"""Chat schema: inboxes, contacts, conversations, messages.

Revision ID: 001_chat_schema
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op

revision = "001_chat_schema"
down_revision = None
branch_labels = None
depends_on = None

SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE chat_inboxes (
    id                  uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    organization_id     uuid NOT NULL,
    name                text NOT NULL,
    channel_type        text NOT NULL DEFAULT 'whatsapp',
    instance_name       text NOT NULL,
    provider_base_url   text,
    connection_status   text NOT NULL DEFAULT 'pending'
        CHECK (connection_status IN ('pending', 'connected', 'disconnected')),
    qr_code             text,
    profile_name        text,
    profile_pic_url     text,
    phone_number        text,
    owner_jid           text,
    contacts_count      integer NOT NULL DEFAULT 0,
    conversations_count integer NOT NULL DEFAULT 0,
    created_at          timestamptz NOT NULL DEFAULT now(),
    updated_at          timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT uq_chat_inboxes_instance_name UNIQUE (instance_name)
);

CREATE TABLE chat_contacts (
    id              uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    inbox_id        uuid NOT NULL REFERENCES chat_inboxes (id) ON DELETE CASCADE,
    organization_id uuid,
    remote_jid      text NOT NULL,
    name            text,
    contact_type    text NOT NULL DEFAULT 'individual'
        CHECK (contact_type IN ('individual', 'group')),
    avatar_url      text,
    created_at      timestamptz NOT NULL DEFAULT now(),
    updated_at      timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT uq_chat_contacts_inbox_remote_jid UNIQUE (inbox_id, remote_jid)
);

CREATE TABLE chat_conversations (
    id               uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    inbox_id         uuid NOT NULL REFERENCES chat_inboxes (id) ON DELETE CASCADE,
    contact_id       uuid NOT NULL REFERENCES chat_contacts (id) ON DELETE CASCADE,
    organization_id  uuid,
    status           text NOT NULL DEFAULT 'open',
    last_activity_at timestamptz,
    labels           text[] NOT NULL DEFAULT '{}',
    is_archived      boolean NOT NULL DEFAULT false,
    is_pinned        boolean NOT NULL DEFAULT false,
    created_at       timestamptz NOT NULL DEFAULT now(),
    updated_at       timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT uq_chat_conversations_inbox_contact UNIQUE (inbox_id, contact_id)
);

CREATE INDEX ix_chat_conversations_inbox_activity
    ON chat_conversations (inbox_id, last_activity_at DESC NULLS LAST);

CREATE TABLE chat_messages (
    id              uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    conversation_id uuid NOT NULL REFERENCES chat_conversations (id) ON DELETE CASCADE,
    content         text NOT NULL DEFAULT '',
    direction       text NOT NULL CHECK (direction IN ('incoming', 'outgoing')),
    message_type    text NOT NULL DEFAULT 'text',
    status          text NOT NULL
        CHECK (status IN ('received', 'pending', 'sending', 'sent', 'delivered', 'read', 'failed')),
    external_id     text,
    participant_jid text,
    created_at      timestamptz NOT NULL DEFAULT now(),
    updated_at      timestamptz NOT NULL DEFAULT now()
);

-- Idempotency key for provider deliveries; NULL ids never collide
CREATE UNIQUE INDEX uq_chat_messages_external_id
    ON chat_messages (external_id) WHERE external_id IS NOT NULL;

CREATE INDEX ix_chat_messages_conversation_created
    ON chat_messages (conversation_id, created_at);
"""


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(SQL)


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        "DROP TABLE IF EXISTS chat_messages, chat_conversations, chat_contacts, chat_inboxes"
    )
