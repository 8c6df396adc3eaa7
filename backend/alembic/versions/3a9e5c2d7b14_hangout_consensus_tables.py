"""hangouts, participants, options, votes, guests, invites, notifications

Revision ID: 3a9e5c2d7b14
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa

revision = "3a9e5c2d7b14"
down_revision = None
branch_labels = None
depends_on = None


def _identity_columns():
    return [
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("guest_id", sa.Integer(), sa.ForeignKey("guest_profiles.id"), nullable=True),
    ]


def upgrade():
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("avatar_url", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("ix_profiles_external_id", "profiles", ["external_id"], unique=True)

    op.create_table(
        "guest_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("public_id", sa.String(length=32), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "converted_to_profile_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("idempotency_key", sa.String(length=160), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("ix_guest_profiles_token", "guest_profiles", ["token"], unique=True)
    op.create_index("ix_guest_profiles_public_id", "guest_profiles", ["public_id"], unique=True)

    op.create_table(
        "hangouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PLANNING"),
        sa.Column("consensus_threshold", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("allow_participant_suggestions", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_voting_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voting_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_option_id", sa.Integer(), nullable=True),
        sa.Column("final_activity_ref", sa.String(length=128), nullable=True),
        sa.Column("final_time_option_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("ix_hangouts_creator_id", "hangouts", ["creator_id"])
    op.create_index("ix_hangouts_status", "hangouts", ["status"])

    op.create_table(
        "hangout_participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("hangout_id", sa.Integer(), sa.ForeignKey("hangouts.id", ondelete="CASCADE"), nullable=False),
        *_identity_columns(),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rsvp_status", sa.String(length=16), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("hangout_id", "profile_id", name="uq_hangout_participant_profile"),
        sa.UniqueConstraint("hangout_id", "guest_id", name="uq_hangout_participant_guest"),
        sa.CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_hangout_participant_one_identity"),
    )
    op.create_index("ix_hangout_participants_hangout_id", "hangout_participants", ["hangout_id"])
    op.create_index("ix_hangout_participants_profile_id", "hangout_participants", ["profile_id"])
    op.create_index("ix_hangout_participants_guest_id", "hangout_participants", ["guest_id"])

    op.create_table(
        "hangout_activity_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("hangout_id", sa.Integer(), sa.ForeignKey("hangouts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("activity_ref", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("added_by_profile_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("added_by_guest_id", sa.Integer(), sa.ForeignKey("guest_profiles.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("hangout_id", "display_order", name="uq_activity_option_order"),
    )
    op.create_index("ix_hangout_activity_options_hangout_id", "hangout_activity_options", ["hangout_id"])

    op.create_table(
        "hangout_time_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("hangout_id", sa.Integer(), sa.ForeignKey("hangouts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("hangout_id", "display_order", name="uq_time_option_order"),
    )
    op.create_index("ix_hangout_time_options_hangout_id", "hangout_time_options", ["hangout_id"])

    op.create_foreign_key(
        "fk_hangouts_final_option", "hangouts", "hangout_activity_options", ["final_option_id"], ["id"]
    )
    op.create_foreign_key(
        "fk_hangouts_final_time_option", "hangouts", "hangout_time_options", ["final_time_option_id"], ["id"]
    )

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "activity_option_id",
            sa.Integer(),
            sa.ForeignKey("hangout_activity_options.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_identity_columns(),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("activity_option_id", "profile_id", name="uq_vote_option_profile"),
        sa.UniqueConstraint("activity_option_id", "guest_id", name="uq_vote_option_guest"),
        sa.CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_vote_one_identity"),
    )
    op.create_index("ix_votes_activity_option_id", "votes", ["activity_option_id"])

    op.create_table(
        "time_votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "time_option_id",
            sa.Integer(),
            sa.ForeignKey("hangout_time_options.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_identity_columns(),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.UniqueConstraint("time_option_id", "profile_id", name="uq_time_vote_option_profile"),
        sa.UniqueConstraint("time_option_id", "guest_id", name="uq_time_vote_option_guest"),
        sa.CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_time_vote_one_identity"),
    )
    op.create_index("ix_time_votes_time_option_id", "time_votes", ["time_option_id"])

    op.create_table(
        "hangout_invites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "hangout_id",
            sa.Integer(),
            sa.ForeignKey("hangouts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column(
            "created_by_participant_id",
            sa.Integer(),
            sa.ForeignKey("hangout_participants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("ix_hangout_invites_token", "hangout_invites", ["token"], unique=True)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_identity_columns(),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("link", sa.String(length=512), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_notification_one_recipient"),
    )
    op.create_index("ix_notifications_profile_id", "notifications", ["profile_id"])
    op.create_index("ix_notifications_guest_id", "notifications", ["guest_id"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("hangout_invites")
    op.drop_table("time_votes")
    op.drop_table("votes")
    op.drop_constraint("fk_hangouts_final_time_option", "hangouts", type_="foreignkey")
    op.drop_constraint("fk_hangouts_final_option", "hangouts", type_="foreignkey")
    op.drop_table("hangout_time_options")
    op.drop_table("hangout_activity_options")
    op.drop_table("hangout_participants")
    op.drop_table("hangouts")
    op.drop_table("guest_profiles")
    op.drop_table("profiles")
