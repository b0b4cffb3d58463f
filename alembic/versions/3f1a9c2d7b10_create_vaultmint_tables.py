"""create_vaultmint_tables

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-19 09:12:44.102311

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

claim_status = sa.Enum("PENDING", "MINTING", "CLAIMED", "FAILED", name="claimstatus")
job_kind = sa.Enum("PREPARE", "MINT", name="jobkind")
job_status = sa.Enum("QUEUED", "RUNNING", "COMPLETED", "FAILED", name="jobstatus")


def upgrade() -> None:
    """Create organizer, campaign, session, vault, token, claim and job tables."""
    op.create_table(
        "organizers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "campaigns",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("token_symbol", sa.String(length=32), nullable=True),
        sa.Column("token_uri", sa.String(), nullable=True),
        sa.Column("metadata_uri", sa.String(), nullable=True),
        sa.Column("organizer_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organizer_id"], ["organizers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_campaigns_organizer_id", "campaigns", ["organizer_id"])

    op.create_table(
        "qr_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("campaign_id", sa.Uuid(), nullable=False),
        sa.Column("max_claims", sa.Integer(), nullable=True),
        sa.Column("collection", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_qr_sessions_campaign_id", "qr_sessions", ["campaign_id"])

    op.create_table(
        "vaults",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("address", sa.String(length=64), nullable=False),
        sa.Column("encrypted_private_key", sa.String(), nullable=False),
        sa.Column("qr_session_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["qr_session_id"], ["qr_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("qr_session_id"),
    )
    op.create_index("ix_vaults_address", "vaults", ["address"])

    op.create_table(
        "tokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("mint_address", sa.String(length=128), nullable=False),
        sa.Column("metadata_uri", sa.String(), nullable=True),
        sa.Column("campaign_id", sa.Uuid(), nullable=False),
        sa.Column("qr_session_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.id"]),
        sa.ForeignKeyConstraint(["qr_session_id"], ["qr_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tokens_mint_address", "tokens", ["mint_address"], unique=True)
    op.create_index("ix_tokens_campaign_id", "tokens", ["campaign_id"])
    op.create_index("ix_tokens_qr_session_id", "tokens", ["qr_session_id"])

    op.create_table(
        "claims",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("qr_session_id", sa.Uuid(), nullable=True),
        sa.Column("wallet", sa.String(length=64), nullable=True),
        sa.Column("status", claim_status, nullable=False),
        sa.Column("mint_address", sa.String(length=128), nullable=True),
        sa.Column("token_id", sa.Uuid(), nullable=True),
        sa.Column("error", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["qr_session_id"], ["qr_sessions.id"]),
        sa.ForeignKeyConstraint(["token_id"], ["tokens.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_id"),
    )
    op.create_index("ix_claims_qr_session_id", "claims", ["qr_session_id"])
    op.create_index("ix_claims_status", "claims", ["status"])

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("channel", sa.String(length=255), nullable=False),
        sa.Column("kind", job_kind, nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_error", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_jobs_channel", "jobs", ["channel"])
    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_available_at", "jobs", ["available_at"])
    # Queue polling: WHERE channel = ? AND status = 'QUEUED' ORDER BY created_at
    op.create_index("ix_jobs_channel_status_created_at", "jobs", ["channel", "status", "created_at"])


def downgrade() -> None:
    """Drop all vaultmint tables."""
    op.drop_table("jobs")
    op.drop_table("claims")
    op.drop_table("tokens")
    op.drop_table("vaults")
    op.drop_table("qr_sessions")
    op.drop_table("campaigns")
    op.drop_table("organizers")
    job_status.drop(op.get_bind(), checkfirst=True)
    job_kind.drop(op.get_bind(), checkfirst=True)
    claim_status.drop(op.get_bind(), checkfirst=True)
