"""automation rules and execution audit

Revision ID: 20261017_02
Revises: 20261017_01
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261017_02"
down_revision = "20261017_01"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "automation_rules",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("trigger_type", sa.String(length=48), nullable=False),
        sa.Column("trigger_config", sa.JSON(), nullable=True),
        sa.Column("conditions", sa.JSON(), nullable=True),
        sa.Column("action_type", sa.String(length=48), nullable=False),
        sa.Column("action_config", sa.JSON(), nullable=True),
        sa.Column("project_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_automation_rules_trigger_type", "automation_rules", ["trigger_type"])
    op.create_index("ix_automation_rules_project_id", "automation_rules", ["project_id"])
    op.create_index(
        "ix_automation_rules_project_trigger_status",
        "automation_rules",
        ["project_id", "trigger_type", "status"],
    )

    op.create_table(
        "rule_executions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("rule_id", sa.String(length=36), nullable=False),
        sa.Column("trigger_type", sa.String(length=48), nullable=False),
        sa.Column("trigger_data", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
        sa.Column("action_result", sa.JSON(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("outcome", sa.String(length=16), nullable=False),
        sa.Column("execution_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("triggered_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("job_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_rule_executions_rule_id", "rule_executions", ["rule_id"])
    op.create_index("ix_rule_executions_job_id", "rule_executions", ["job_id"])
    op.create_index("ix_rule_executions_rule_created", "rule_executions", ["rule_id", "created_at"])
    op.create_index("ix_rule_executions_rule_success", "rule_executions", ["rule_id", "success"])


def downgrade() -> None:
    op.drop_index("ix_rule_executions_rule_success", table_name="rule_executions")
    op.drop_index("ix_rule_executions_rule_created", table_name="rule_executions")
    op.drop_index("ix_rule_executions_job_id", table_name="rule_executions")
    op.drop_index("ix_rule_executions_rule_id", table_name="rule_executions")
    op.drop_table("rule_executions")
    op.drop_index("ix_automation_rules_project_trigger_status", table_name="automation_rules")
    op.drop_index("ix_automation_rules_project_id", table_name="automation_rules")
    op.drop_index("ix_automation_rules_trigger_type", table_name="automation_rules")
    op.drop_table("automation_rules")
