"""initial_survey_flow_schema

Revision ID: 3c9e1f2a7b40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c9e1f2a7b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

survey_status = sa.Enum("DRAFT", "PUBLISHED", "CLOSED", name="surveystatus")
quota_behavior = sa.Enum("REJECT", "CLOSE_SURVEY", name="quotabehavior")
question_type = sa.Enum(
    "SHORT_TEXT",
    "LONG_TEXT",
    "EMAIL",
    "PHONE",
    "URL",
    "NUMBER",
    "DATE",
    "TIME",
    "DATE_TIME",
    "YES_NO",
    "RATING",
    "NPS",
    "SLIDER",
    "MULTIPLE_CHOICE",
    "CHECKBOXES",
    "DROPDOWN",
    "MULTI_SELECT_DROPDOWN",
    "RANKING",
    "LIKERT",
    "MATRIX",
    "SECTION",
    "PAGE_BREAK",
    name="questiontype",
)
target_action = sa.Enum("SKIP_TO", "END_SURVEY", "SHOW_QUESTION", name="targetaction")
response_status = sa.Enum("COMPLETED", name="responsestatus")
channel_type = sa.Enum("LINK", "QR_CODE", "EMAIL", name="channeltype")


def upgrade() -> None:
    op.create_table(
        "surveys",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False),
        sa.Column("status", survey_status, nullable=False),
        sa.Column("open_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("close_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_quota", sa.Integer(), nullable=True),
        sa.Column("quota_behavior", quota_behavior, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_surveys_owner_id", "surveys", ["owner_id"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("survey_id", sa.Uuid(), nullable=False),
        sa.Column("ordering", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("question_type", question_type, nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("help_text", sa.String(length=500), nullable=True),
        sa.Column("default_value", sa.String(length=500), nullable=True),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["survey_id"], ["surveys.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_questions_survey_id", "questions", ["survey_id"])

    op.create_table(
        "question_options",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("question_id", sa.Uuid(), nullable=False),
        sa.Column("ordering", sa.Integer(), nullable=False),
        sa.Column("text", sa.String(length=500), nullable=False),
        sa.Column("value", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_question_options_question_id", "question_options", ["question_id"])

    op.create_table(
        "branch_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("survey_id", sa.Uuid(), nullable=False),
        sa.Column("source_question_id", sa.Uuid(), nullable=False),
        sa.Column("condition", sa.JSON(), nullable=False),
        sa.Column("target_action", target_action, nullable=False),
        sa.Column("target_question_id", sa.Uuid(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["survey_id"], ["surveys.id"]),
        sa.ForeignKeyConstraint(["source_question_id"], ["questions.id"]),
        sa.ForeignKeyConstraint(["target_question_id"], ["questions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_branch_rules_survey_id", "branch_rules", ["survey_id"])
    op.create_index(
        "ix_branch_rules_source_question_id", "branch_rules", ["source_question_id"]
    )
    op.create_index(
        "ix_branch_rules_source_priority",
        "branch_rules",
        ["source_question_id", "priority"],
    )

    op.create_table(
        "survey_channels",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("survey_id", sa.Uuid(), nullable=False),
        sa.Column("channel_type", channel_type, nullable=False),
        sa.Column("slug", sa.String(length=200), nullable=True),
        sa.Column("full_url", sa.String(length=500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["survey_id"], ["surveys.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_survey_channels_survey_id", "survey_channels", ["survey_id"])
    op.create_index("ix_survey_channels_slug", "survey_channels", ["slug"], unique=True)

    op.create_table(
        "survey_responses",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("survey_id", sa.Uuid(), nullable=False),
        sa.Column("channel_id", sa.Uuid(), nullable=True),
        sa.Column("status", response_status, nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("anon_token", sa.String(length=200), nullable=True),
        sa.Column("respondent_email", sa.String(length=255), nullable=True),
        sa.Column("respondent_ip", sa.String(length=64), nullable=True),
        sa.Column("idempotency_token", sa.String(length=200), nullable=True),
        sa.Column("is_locked", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["survey_id"], ["surveys.id"]),
        sa.ForeignKeyConstraint(["channel_id"], ["survey_channels.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "survey_id", "idempotency_token", name="uq_survey_responses_idempotency"
        ),
    )
    op.create_index("ix_survey_responses_survey_id", "survey_responses", ["survey_id"])

    op.create_table(
        "response_answers",
        sa.Column("response_id", sa.Uuid(), nullable=False),
        sa.Column("question_id", sa.Uuid(), nullable=False),
        sa.Column("answer_text", sa.Text(), nullable=True),
        sa.Column("numeric_value", sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column("date_value", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["response_id"], ["survey_responses.id"]),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"]),
        sa.PrimaryKeyConstraint("response_id", "question_id"),
    )

    op.create_table(
        "survey_collaborators",
        sa.Column("survey_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column("granted_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["survey_id"], ["surveys.id"]),
        sa.PrimaryKeyConstraint("survey_id", "user_id"),
    )

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("survey_id", sa.Uuid(), nullable=True),
        sa.Column("response_id", sa.Uuid(), nullable=True),
        sa.Column("action_type", sa.String(length=100), nullable=False),
        sa.Column("action_detail", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["survey_id"], ["surveys.id"]),
        sa.ForeignKeyConstraint(["response_id"], ["survey_responses.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_log_survey_id", "activity_log", ["survey_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_log_survey_id", table_name="activity_log")
    op.drop_table("activity_log")
    op.drop_table("survey_collaborators")
    op.drop_table("response_answers")
    op.drop_index("ix_survey_responses_survey_id", table_name="survey_responses")
    op.drop_table("survey_responses")
    op.drop_index("ix_survey_channels_slug", table_name="survey_channels")
    op.drop_index("ix_survey_channels_survey_id", table_name="survey_channels")
    op.drop_table("survey_channels")
    op.drop_index("ix_branch_rules_source_priority", table_name="branch_rules")
    op.drop_index("ix_branch_rules_source_question_id", table_name="branch_rules")
    op.drop_index("ix_branch_rules_survey_id", table_name="branch_rules")
    op.drop_table("branch_rules")
    op.drop_index("ix_question_options_question_id", table_name="question_options")
    op.drop_table("question_options")
    op.drop_index("ix_questions_survey_id", table_name="questions")
    op.drop_table("questions")
    op.drop_index("ix_surveys_owner_id", table_name="surveys")
    op.drop_table("surveys")

    bind = op.get_bind()
    for enum_type in (
        channel_type,
        response_status,
        target_action,
        question_type,
        quota_behavior,
        survey_status,
    ):
        enum_type.drop(bind, checkfirst=True)
