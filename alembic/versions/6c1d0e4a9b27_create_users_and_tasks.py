"""create users and tasks with the assignee overlap constraint"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "6c1d0e4a9b27"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "role",
            sa.Enum("admin", "manager", "user", name="user_role", native_enum=False),
            nullable=False,
            server_default="user",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "in_progress",
                "completed",
                name="task_status",
                native_enum=False,
                validate_strings=True,
            ),
            nullable=False,
            server_default="in_progress",
        ),
        sa.Column("assigned_user_id", sa.Integer(), nullable=True),
        sa.Column("assigned_by_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("length(title) > 0", name="ck_tasks_title_length"),
        sa.CheckConstraint("start_date < end_date", name="ck_tasks_window_order"),
        sa.ForeignKeyConstraint(
            ["assigned_user_id"],
            ["users.id"],
            name="fk_tasks_assigned_user_id_users",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["assigned_by_id"],
            ["users.id"],
            name="fk_tasks_assigned_by_id_users",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_tasks"),
    )
    op.create_index(
        "ix_tasks_assignee_window",
        "tasks",
        ["assigned_user_id", "start_date", "end_date"],
        unique=False,
    )
    op.create_index("ix_tasks_status", "tasks", ["status"], unique=False)

    if op.get_bind().dialect.name == "postgresql":
        # Closed ranges: touching windows conflict, matching the service check.
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE tasks
            ADD CONSTRAINT ex_tasks_assignee_no_overlap
            EXCLUDE USING gist (
                assigned_user_id WITH =,
                tstzrange(start_date, end_date, '[]') WITH &&
            )
            WHERE (assigned_user_id IS NOT NULL AND status <> 'completed')
            """
        )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TABLE tasks DROP CONSTRAINT IF EXISTS ex_tasks_assignee_no_overlap")
    op.drop_index("ix_tasks_status", table_name="tasks")
    op.drop_index("ix_tasks_assignee_window", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("users")
