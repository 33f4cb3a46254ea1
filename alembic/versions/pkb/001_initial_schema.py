"""initial_schema

Revision ID: pkb_001
Revises:
Create Date: 2026-01-15 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "pkb_001"
down_revision = None
branch_labels = ("pkb",)
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS contacts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            display_name TEXT NOT NULL,
            photo_url TEXT,
            starred BOOLEAN NOT NULL DEFAULT false,
            manual_importance INTEGER,
            engagement_score DECIMAL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            deleted_at TIMESTAMPTZ
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_contacts_live ON contacts (id) WHERE deleted_at IS NULL"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS contact_identifiers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            type TEXT NOT NULL CHECK (type IN ('email', 'phone', 'social_handle')),
            value TEXT NOT NULL,
            source TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (type, value)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_contact_identifiers_contact_id "
        "ON contact_identifiers (contact_id)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS communications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            source TEXT NOT NULL,
            source_id TEXT NOT NULL,
            contact_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            direction TEXT CHECK (direction IN ('inbound', 'outbound')),
            subject TEXT,
            content TEXT,
            timestamp TIMESTAMPTZ,
            metadata JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (source, source_id)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_communications_contact_id ON communications (contact_id)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS facts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            category TEXT,
            fact_type TEXT,
            value TEXT NOT NULL,
            structured_value JSONB,
            source TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            deleted_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_facts_contact_id ON facts (contact_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS notes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            content TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            deleted_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_notes_contact_id ON notes (contact_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS followups (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            type TEXT CHECK (type IN ('manual', 'time_based', 'content_detected')),
            reason TEXT,
            due_date DATE,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_followups_contact_id ON followups (contact_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS tags (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT UNIQUE NOT NULL,
            color TEXT,
            followup_days INTEGER
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS contact_tags (
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            tag_id UUID NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
            PRIMARY KEY (contact_id, tag_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_contact_tags_tag_id ON contact_tags (tag_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS groups (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL,
            parent_id UUID REFERENCES groups(id) ON DELETE SET NULL,
            followup_days INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_groups_parent_id ON groups (parent_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS contact_groups (
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            group_id UUID NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
            PRIMARY KEY (contact_id, group_id)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_contact_groups_group_id ON contact_groups (group_id)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS smart_lists (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL,
            rules JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS contact_relationships (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_a_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            contact_b_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            relationship_type TEXT
                CHECK (relationship_type IN ('colleague', 'family', 'friend', 'inferred')),
            source TEXT,
            strength DECIMAL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_contact_relationships_a "
        "ON contact_relationships (contact_a_id)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_contact_relationships_b "
        "ON contact_relationships (contact_b_id)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS relationships (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            contact_id UUID NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
            label TEXT NOT NULL,
            person_name TEXT NOT NULL,
            linked_contact_id UUID REFERENCES contacts(id) ON DELETE SET NULL,
            source TEXT NOT NULL DEFAULT 'manual' CHECK (source IN ('extracted', 'manual')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            deleted_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_relationships_unique
        ON relationships (contact_id, lower(label), lower(person_name))
        WHERE deleted_at IS NULL
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_relationships_linked_contact_id "
        "ON relationships (linked_contact_id)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            entity_type TEXT,
            entity_id UUID,
            action TEXT CHECK (action IN ('create', 'update', 'delete')),
            old_value JSONB,
            new_value JSONB,
            timestamp TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_audit_log_entity ON audit_log (entity_type, entity_id)"
    )


def downgrade() -> None:
    for table in (
        "audit_log",
        "relationships",
        "contact_relationships",
        "smart_lists",
        "contact_groups",
        "groups",
        "contact_tags",
        "tags",
        "followups",
        "notes",
        "facts",
        "communications",
        "contact_identifiers",
        "contacts",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
