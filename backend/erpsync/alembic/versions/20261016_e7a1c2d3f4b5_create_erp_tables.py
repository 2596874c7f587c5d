"""create erp tables

Revision ID: e7a1c2d3f4b5
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "e7a1c2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_profiles_tenant_id", "user_profiles", ["tenant_id"], unique=False)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "tenant_id", "role", name="uq_user_roles_user_tenant_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"], unique=False)
    op.create_index("ix_user_roles_tenant_id", "user_roles", ["tenant_id"], unique=False)

    op.create_table(
        "erp_integrations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("erp_system", sa.String(length=30), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("api_endpoint", sa.String(length=2048), nullable=True),
        sa.Column("api_version", sa.String(length=50), nullable=True),
        sa.Column("credentials_encrypted", sa.Text(), nullable=True),
        sa.Column("access_token_encrypted", sa.Text(), nullable=True),
        sa.Column("refresh_token_encrypted", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("oauth_config", sa.JSON(), nullable=False),
        sa.Column("oauth_client_secret_encrypted", sa.Text(), nullable=True),
        sa.Column("webhook_secret_encrypted", sa.Text(), nullable=True),
        sa.Column(
            "connection_status",
            sa.String(length=20),
            nullable=False,
            server_default="disconnected",
        ),
        sa.Column("is_sandbox", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_test_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "erp_system", name="uq_erp_integrations_tenant_system"),
    )
    op.create_index("ix_erp_integrations_tenant_id", "erp_integrations", ["tenant_id"], unique=False)

    op.create_table(
        "erp_entities",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("integration_id", sa.String(length=36), nullable=False),
        sa.Column("entity_type", sa.String(length=30), nullable=False),
        sa.Column("erp_entity_name", sa.String(length=255), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["integration_id"], ["erp_integrations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("integration_id", "entity_type", name="uq_erp_entities_integration_type"),
    )
    op.create_index("ix_erp_entities_integration_id", "erp_entities", ["integration_id"], unique=False)

    op.create_table(
        "erp_field_mappings",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("local_field", sa.String(length=255), nullable=False),
        sa.Column("erp_field", sa.String(length=255), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("transform_function", sa.String(length=30), nullable=True),
        sa.Column("default_value", sa.String(length=255), nullable=True),
        sa.Column("ai_suggested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ai_confidence_score", sa.Numeric(precision=3, scale=2), nullable=True),
        sa.Column("manually_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["entity_id"], ["erp_entities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_id", "local_field", name="uq_erp_field_mappings_entity_field"),
    )
    op.create_index("ix_erp_field_mappings_entity_id", "erp_field_mappings", ["entity_id"], unique=False)

    op.create_table(
        "erp_sync_jobs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("integration_id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("entity_type", sa.String(length=30), nullable=False),
        sa.Column("direction", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("triggered_by", sa.String(length=36), nullable=True),
        sa.Column("is_manual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("records_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["integration_id"], ["erp_integrations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_erp_sync_jobs_integration_id", "erp_sync_jobs", ["integration_id"], unique=False)
    op.create_index("ix_erp_sync_jobs_tenant_id", "erp_sync_jobs", ["tenant_id"], unique=False)
    op.create_index(
        "ix_erp_sync_jobs_status_next_retry", "erp_sync_jobs", ["status", "next_retry_at"], unique=False
    )
    op.create_index(
        "ix_erp_sync_jobs_tenant_key", "erp_sync_jobs", ["tenant_id", "idempotency_key"], unique=False
    )

    op.create_table(
        "erp_idempotency_keys",
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("tenant_id", "key"),
    )
    op.create_index(
        "ix_erp_idempotency_keys_tenant_created",
        "erp_idempotency_keys",
        ["tenant_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "erp_sync_rate_state",
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_count_1h", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("window_start_1h", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_claim_key", sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint("tenant_id"),
    )

    op.create_table(
        "erp_ai_rate_state",
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("ai_count_1h", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("window_start_1h", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("tenant_id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("performed_by", sa.String(length=36), nullable=True),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"], unique=False)
    op.create_index("ix_audit_logs_action_type", "audit_logs", ["action_type"], unique=False)
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action_type", table_name="audit_logs")
    op.drop_index("ix_audit_logs_tenant_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("erp_ai_rate_state")
    op.drop_table("erp_sync_rate_state")
    op.drop_index("ix_erp_idempotency_keys_tenant_created", table_name="erp_idempotency_keys")
    op.drop_table("erp_idempotency_keys")
    op.drop_index("ix_erp_sync_jobs_tenant_key", table_name="erp_sync_jobs")
    op.drop_index("ix_erp_sync_jobs_status_next_retry", table_name="erp_sync_jobs")
    op.drop_index("ix_erp_sync_jobs_tenant_id", table_name="erp_sync_jobs")
    op.drop_index("ix_erp_sync_jobs_integration_id", table_name="erp_sync_jobs")
    op.drop_table("erp_sync_jobs")
    op.drop_index("ix_erp_field_mappings_entity_id", table_name="erp_field_mappings")
    op.drop_table("erp_field_mappings")
    op.drop_index("ix_erp_entities_integration_id", table_name="erp_entities")
    op.drop_table("erp_entities")
    op.drop_index("ix_erp_integrations_tenant_id", table_name="erp_integrations")
    op.drop_table("erp_integrations")
    op.drop_index("ix_user_roles_tenant_id", table_name="user_roles")
    op.drop_index("ix_user_roles_user_id", table_name="user_roles")
    op.drop_table("user_roles")
    op.drop_index("ix_user_profiles_tenant_id", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_table("tenants")
