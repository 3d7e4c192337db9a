"""Create authorization, service, claim and submission tables.

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19

Source: Design Document 02_authorization_and_billing_consistency.md Section 3
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from src.core.enums import (
    AuthorizationStatus,
    BillingFormat,
    BillingStatus,
    ClaimFormType,
    ClaimStatus,
    ClaimType,
    DocumentationStatus,
    SubmissionMethod,
)

# Revision identifiers
revision = "20261019_001"
down_revision = None
branch_labels = None
depends_on = None

# Enum types are shared by several columns, so they are created once up front.
authorization_status = postgresql.ENUM(AuthorizationStatus, name="authorizationstatus", create_type=False)
documentation_status = postgresql.ENUM(DocumentationStatus, name="documentationstatus", create_type=False)
billing_status = postgresql.ENUM(BillingStatus, name="billingstatus", create_type=False)
claim_status = postgresql.ENUM(ClaimStatus, name="claimstatus", create_type=False)
claim_type = postgresql.ENUM(ClaimType, name="claimtype", create_type=False)
claim_form_type = postgresql.ENUM(ClaimFormType, name="claimformtype", create_type=False)
billing_format = postgresql.ENUM(BillingFormat, name="billingformat", create_type=False)
submission_method = postgresql.ENUM(SubmissionMethod, name="submissionmethod", create_type=False)

ENUM_TYPES = (
    authorization_status,
    documentation_status,
    billing_status,
    claim_status,
    claim_type,
    claim_form_type,
    billing_format,
    submission_method,
)


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create billing engine tables."""
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # Reference data
    op.create_table(
        "clients",
        _uuid_pk(),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("medicaid_id", sa.String(50), nullable=True, index=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_table(
        "programs",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_table(
        "service_types",
        _uuid_pk(),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("unit_rate", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_table(
        "payers",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("payer_code", sa.String(50), nullable=False, unique=True),
        sa.Column("default_claim_type", claim_form_type, nullable=True),
        sa.Column("required_billing_format", billing_format, nullable=True),
        sa.Column("accepts_electronic_claims", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("filing_deadline_days", sa.Integer, nullable=True),
        sa.Column("clearinghouse_id", sa.String(100), nullable=True),
        sa.Column("electronic_endpoint", sa.String(500), nullable=True),
        sa.Column("portal_url", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    # Authorizations
    op.create_table(
        "authorizations",
        _uuid_pk(),
        sa.Column(
            "client_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("clients.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "program_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("programs.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("authorization_number", sa.String(100), nullable=False),
        sa.Column("issuer", sa.String(200), nullable=False),
        sa.Column("status", authorization_status, nullable=False, index=True),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("authorized_units", sa.Integer, nullable=False),
        sa.Column("service_type_ids", postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("issued_date", sa.Date, nullable=True),
        sa.Column("issued_by", sa.String(200), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("issuer", "authorization_number", name="issuer_number"),
        sa.CheckConstraint(
            "authorized_units >= 0", name="ck_authorizations_authorized_units_non_negative"
        ),
        sa.CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_authorizations_valid_date_range",
        ),
    )
    op.create_index("ix_authorizations_client_status", "authorizations", ["client_id", "status"])
    # Array overlap (&&) lookups for the overlap check
    op.create_index(
        "ix_authorizations_service_type_ids",
        "authorizations",
        ["service_type_ids"],
        postgresql_using="gin",
    )

    op.create_table(
        "authorization_utilizations",
        _uuid_pk(),
        sa.Column(
            "authorization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("authorizations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("used_units", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "used_units >= 0", name="ck_authorization_utilizations_used_units_non_negative"
        ),
    )

    # Claims before services: services.claim_id references claims
    op.create_table(
        "claims",
        _uuid_pk(),
        sa.Column("claim_number", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column(
            "client_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("clients.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "payer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("payers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("claim_type", claim_type, nullable=False),
        sa.Column("claim_form_type", claim_form_type, nullable=False),
        sa.Column("billing_format", billing_format, nullable=False),
        sa.Column("status", claim_status, nullable=False, index=True),
        sa.Column("service_start_date", sa.Date, nullable=False),
        sa.Column("service_end_date", sa.Date, nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("submission_method", submission_method, nullable=True),
        sa.Column("submission_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("external_claim_id", sa.String(100), nullable=True, index=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column("adjudication_date", sa.Date, nullable=True),
        sa.Column("denial_reason", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_claims_payer_status", "claims", ["payer_id", "status"])

    op.create_table(
        "services",
        _uuid_pk(),
        sa.Column(
            "client_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("clients.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "service_type_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("service_date", sa.Date, nullable=False),
        sa.Column("units", sa.Integer, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("documentation_status", documentation_status, nullable=False),
        sa.Column("billing_status", billing_status, nullable=False),
        sa.Column(
            "authorization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("authorizations.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column(
            "claim_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("claims.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("units >= 0", name="ck_services_units_non_negative"),
    )
    op.create_index("ix_services_billing", "services", ["billing_status", "documentation_status"])

    op.create_table(
        "claim_services",
        _uuid_pk(),
        sa.Column(
            "claim_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("claims.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint("claim_id", "service_id", name="claim_service"),
    )

    # Audit tables
    op.create_table(
        "claim_status_history",
        _uuid_pk(),
        sa.Column(
            "claim_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("claims.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("previous_status", claim_status, nullable=True),
        sa.Column("new_status", claim_status, nullable=False),
        sa.Column(
            "changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True
        ),
        sa.Column("changed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=True),
    )
    op.create_table(
        "submission_attempts",
        _uuid_pk(),
        sa.Column(
            "claim_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("claims.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("channel", submission_method, nullable=False),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("confirmation_number", sa.String(100), nullable=True),
        sa.Column("external_claim_id", sa.String(100), nullable=True),
        sa.Column("errors", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("attempted_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "attempted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True
        ),
    )


def downgrade() -> None:
    """Drop billing engine tables."""
    op.drop_table("submission_attempts")
    op.drop_table("claim_status_history")
    op.drop_table("claim_services")
    op.drop_index("ix_services_billing", table_name="services")
    op.drop_table("services")
    op.drop_index("ix_claims_payer_status", table_name="claims")
    op.drop_table("claims")
    op.drop_table("authorization_utilizations")
    op.drop_index("ix_authorizations_service_type_ids", table_name="authorizations")
    op.drop_index("ix_authorizations_client_status", table_name="authorizations")
    op.drop_table("authorizations")
    op.drop_table("payers")
    op.drop_table("service_types")
    op.drop_table("programs")
    op.drop_table("clients")

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
