"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def _fees() -> list[sa.Column]:
    return [
        sa.Column("entry_fee_brutto", sa.Integer(), nullable=False),
        sa.Column("trainer_fee_brutto", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="HUF"),
    ]


def _window() -> list[sa.Column]:
    return [
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    ]


def _created() -> list[sa.Column]:
    return [
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ENUMs: create only if not exists (safe for re-run after partial deploy)
    enums_sql = [
        ("classtemplatestatus", "ACTIVE", "INACTIVE"),
        ("occurrencestatus", "SCHEDULED", "COMPLETED", "CANCELLED"),
        ("registrationstatus", "BOOKED", "WAITLIST", "ATTENDED", "NO_SHOW", "CANCELLED"),
        ("pricingsource", "MANUAL", "IMPORT", "PROMOTION"),
        (
            "pricesourcekind",
            "CLIENT_OCCURRENCE_SPECIFIC",
            "CLIENT_TEMPLATE_SPECIFIC",
            "TEMPLATE_DEFAULT",
            "SERVICE_TYPE_DEFAULT",
            "CLIENT_PRICE_CODE",
        ),
        ("settlementstatus", "DRAFT", "FINALIZED", "PAID"),
        ("passstatus", "ACTIVE", "DEPLETED", "EXPIRED"),
    ]
    for row in enums_sql:
        name, *values = row
        vals = ", ".join(f"'{v}'" for v in values)
        op.execute(
            f"DO $$ BEGIN CREATE TYPE {name} AS ENUM ({vals}); "
            "EXCEPTION WHEN duplicate_object THEN NULL; END $$"
        )

    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_clients_email", "clients", ["email"], unique=True)

    op.create_table(
        "trainers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "class_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", _enum("classtemplatestatus"), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_class_templates_title", "class_templates", ["title"])
    op.create_index("ix_class_templates_trainer_id", "class_templates", ["trainer_id"])
    op.create_index("ix_class_templates_status", "class_templates", ["status"])

    op.create_table(
        "class_occurrences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("class_templates.id", ondelete="SET NULL"), nullable=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("trainers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", _enum("occurrencestatus"), nullable=False, server_default="SCHEDULED"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_class_occurrences_template_id", "class_occurrences", ["template_id"])
    op.create_index("ix_class_occurrences_trainer_id", "class_occurrences", ["trainer_id"])
    op.create_index("ix_class_occurrences_starts_at", "class_occurrences", ["starts_at"])
    op.create_index("ix_class_occurrences_status", "class_occurrences", ["status"])

    op.create_table(
        "class_registrations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("occurrence_id", sa.Integer(), sa.ForeignKey("class_occurrences.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", _enum("registrationstatus"), nullable=False, server_default="BOOKED"),
        sa.Column("booked_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_class_registrations_occurrence_id", "class_registrations", ["occurrence_id"])
    op.create_index("ix_class_registrations_client_id", "class_registrations", ["client_id"])
    op.create_index("ix_class_registrations_status", "class_registrations", ["status"])

    op.create_table(
        "class_pricing_defaults",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("class_template_id", sa.Integer(), sa.ForeignKey("class_templates.id", ondelete="RESTRICT"), nullable=False),
        *_fees(),
        *_window(),
        *_created(),
        sa.CheckConstraint("entry_fee_brutto >= 0", name="ck_pricing_default_entry_fee"),
        sa.CheckConstraint("trainer_fee_brutto >= 0", name="ck_pricing_default_trainer_fee"),
    )
    op.create_index("ix_class_pricing_defaults_class_template_id", "class_pricing_defaults", ["class_template_id"])
    op.create_index("ix_class_pricing_defaults_valid_from", "class_pricing_defaults", ["valid_from"])
    op.create_index("ix_class_pricing_defaults_is_active", "class_pricing_defaults", ["is_active"])
    op.create_index("idx_template_validity", "class_pricing_defaults", ["class_template_id", "valid_from", "valid_until"])

    op.create_table(
        "client_class_pricing",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("class_template_id", sa.Integer(), sa.ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=True),
        sa.Column("class_occurrence_id", sa.Integer(), sa.ForeignKey("class_occurrences.id", ondelete="CASCADE"), nullable=True),
        *_fees(),
        *_window(),
        sa.Column("source", _enum("pricingsource"), nullable=False, server_default="MANUAL"),
        *_created(),
        sa.CheckConstraint("entry_fee_brutto >= 0", name="ck_client_pricing_entry_fee"),
        sa.CheckConstraint("trainer_fee_brutto >= 0", name="ck_client_pricing_trainer_fee"),
        sa.CheckConstraint(
            "(class_template_id IS NULL) <> (class_occurrence_id IS NULL)",
            name="ck_client_pricing_single_target",
        ),
    )
    op.create_index("ix_client_class_pricing_client_id", "client_class_pricing", ["client_id"])
    op.create_index("ix_client_class_pricing_is_active", "client_class_pricing", ["is_active"])
    op.create_index("ix_client_class_pricing_source", "client_class_pricing", ["source"])
    op.create_index("idx_client_occurrence", "client_class_pricing", ["client_id", "class_occurrence_id"])
    op.create_index("idx_client_template", "client_class_pricing", ["client_id", "class_template_id", "valid_from"])

    op.create_table(
        "service_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("default_entry_fee_brutto", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("default_trainer_fee_brutto", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_service_types_code", "service_types", ["code"], unique=True)
    op.create_index("ix_service_types_is_active", "service_types", ["is_active"])

    op.create_table(
        "client_price_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_email", sa.String(length=255), nullable=False),
        sa.Column("service_type_id", sa.Integer(), sa.ForeignKey("service_types.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("price_code", sa.String(length=64), nullable=True),
        *_fees(),
        *_window(),
        *_created(),
        sa.CheckConstraint("entry_fee_brutto >= 0", name="ck_price_code_entry_fee"),
        sa.CheckConstraint("trainer_fee_brutto >= 0", name="ck_price_code_trainer_fee"),
    )
    op.create_index("ix_client_price_codes_client_id", "client_price_codes", ["client_id"])
    op.create_index("ix_client_price_codes_service_type_id", "client_price_codes", ["service_type_id"])
    op.create_index("idx_client_price_codes_lookup", "client_price_codes", ["client_email", "service_type_id", "is_active"])
    op.create_index("idx_client_price_codes_client", "client_price_codes", ["client_id", "service_type_id"])

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("trainers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_trainer_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_entry_fee", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="HUF"),
        sa.Column("status", _enum("settlementstatus"), nullable=False, server_default="DRAFT"),
        sa.Column("skipped", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("trainer_id", "period_start", "period_end", name="uq_settlement_trainer_period"),
    )
    op.create_index("ix_settlements_trainer_id", "settlements", ["trainer_id"])
    op.create_index("ix_settlements_period_start", "settlements", ["period_start"])
    op.create_index("ix_settlements_period_end", "settlements", ["period_end"])
    op.create_index("ix_settlements_status", "settlements", ["status"])
    op.create_index("idx_status_period", "settlements", ["status", "period_start"])

    op.create_table(
        "settlement_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("settlement_id", sa.Integer(), sa.ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("class_occurrence_id", sa.Integer(), sa.ForeignKey("class_occurrences.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("registration_id", sa.Integer(), sa.ForeignKey("class_registrations.id", ondelete="RESTRICT"), nullable=False),
        *_fees(),
        sa.Column("status", _enum("registrationstatus"), nullable=False),
        sa.Column("price_source", _enum("pricesourcekind"), nullable=False),
        sa.Column("price_source_id", sa.Integer(), nullable=True),
        sa.Column("client_name", sa.String(length=200), nullable=False),
        sa.Column("class_name", sa.String(length=200), nullable=False),
        sa.Column("class_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_settlement_items_settlement_id", "settlement_items", ["settlement_id"])
    op.create_index("ix_settlement_items_class_occurrence_id", "settlement_items", ["class_occurrence_id"])
    op.create_index("ix_settlement_items_client_id", "settlement_items", ["client_id"])
    op.create_index("ix_settlement_items_registration_id", "settlement_items", ["registration_id"])

    op.create_table(
        "passes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pass_type", sa.String(length=64), nullable=False, server_default="standard"),
        sa.Column("total_credits", sa.Integer(), nullable=False),
        sa.Column("credits_left", sa.Integer(), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("status", _enum("passstatus"), nullable=False, server_default="ACTIVE"),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="manual"),
        sa.Column("external_reference", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("credits_left >= 0", name="ck_pass_credits_non_negative"),
        sa.CheckConstraint("credits_left <= total_credits", name="ck_pass_credits_within_total"),
    )
    op.create_index("ix_passes_client_id", "passes", ["client_id"])
    op.create_index("ix_passes_valid_until", "passes", ["valid_until"])
    op.create_index("ix_passes_status", "passes", ["status"])
    op.create_index("idx_pass_client_status", "passes", ["client_id", "status"])

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
    )
    op.create_index("ix_activity_log_created_at", "activity_log", ["created_at"])
    op.create_index("ix_activity_log_actor_id", "activity_log", ["actor_id"])
    op.create_index("ix_activity_log_action", "activity_log", ["action"])
    op.create_index("ix_activity_log_entity_type", "activity_log", ["entity_type"])


def downgrade() -> None:
    op.drop_table("activity_log")
    op.drop_table("passes")
    op.drop_table("settlement_items")
    op.drop_table("settlements")
    op.drop_table("client_price_codes")
    op.drop_table("service_types")
    op.drop_table("client_class_pricing")
    op.drop_table("class_pricing_defaults")
    op.drop_table("class_registrations")
    op.drop_table("class_occurrences")
    op.drop_table("class_templates")
    op.drop_table("trainers")
    op.drop_table("clients")

    for enum_name in (
        "passstatus",
        "settlementstatus",
        "pricesourcekind",
        "pricingsource",
        "registrationstatus",
        "occurrencestatus",
        "classtemplatestatus",
    ):
        postgresql.ENUM(name=enum_name).drop(op.get_bind(), checkfirst=True)
