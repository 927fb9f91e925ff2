"""initial enrollment and payment schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name, *values):
    return postgresql.ENUM(*values, name=name, create_type=False)


def _timestamps():
    return [
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.execute("CREATE TYPE user_role AS ENUM ('admin', 'teacher', 'student')")
    op.execute("CREATE TYPE enrollment_status AS ENUM ('pending', 'approved', 'rejected')")
    op.execute("CREATE TYPE payment_status AS ENUM ('pending', 'completed', 'cancelled', 'refunded')")
    op.execute("CREATE TYPE installment_status AS ENUM ('unpaid', 'paid', 'refunded')")
    op.execute("CREATE TYPE amount_type AS ENUM ('fixed', 'percentage')")

    # Collaborator tables
    op.create_table(
        "users",
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", _enum("user_role", "admin", "teacher", "student"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)
    op.create_index(op.f("ix_users_is_active"), "users", ["is_active"], unique=False)

    op.create_table(
        "courses",
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_courses_id"), "courses", ["id"], unique=False)
    op.create_index(op.f("ix_courses_is_active"), "courses", ["is_active"], unique=False)

    op.create_table(
        "course_classes",
        sa.Column("course_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("level", sa.String(50), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_course_classes_id"), "course_classes", ["id"], unique=False)
    op.create_index(op.f("ix_course_classes_course_id"), "course_classes", ["course_id"], unique=False)
    op.create_index(op.f("ix_course_classes_level"), "course_classes", ["level"], unique=False)
    op.create_index(op.f("ix_course_classes_is_active"), "course_classes", ["is_active"], unique=False)

    op.create_table(
        "class_students",
        sa.Column("class_id", sa.UUID(), nullable=False),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("assigned_by", sa.UUID(), nullable=True),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["class_id"], ["course_classes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("class_id", "student_id"),
    )

    op.create_table(
        "enrolled_courses",
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("course_id", sa.UUID(), nullable=False),
        sa.Column("class_id", sa.UUID(), nullable=True),
        sa.Column("status", _enum("enrollment_status", "pending", "approved", "rejected"), nullable=False),
        sa.Column("enrollment_date", sa.DateTime(), nullable=False),
        sa.Column("approval_date", sa.DateTime(), nullable=True),
        sa.Column("registration_fee_paid", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["class_id"], ["course_classes.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_enrolled_courses_id"), "enrolled_courses", ["id"], unique=False)
    op.create_index(op.f("ix_enrolled_courses_user_id"), "enrolled_courses", ["user_id"], unique=False)
    op.create_index(op.f("ix_enrolled_courses_course_id"), "enrolled_courses", ["course_id"], unique=False)

    # Enrollment requests
    op.create_table(
        "enrollment_requests",
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("course_id", sa.UUID(), nullable=False),
        sa.Column("preferred_level", sa.String(50), nullable=True),
        sa.Column("status", _enum("enrollment_status", "pending", "approved", "rejected"), nullable=False),
        sa.Column("request_date", sa.DateTime(), nullable=False),
        sa.Column("approval_date", sa.DateTime(), nullable=True),
        sa.Column("assigned_class_id", sa.UUID(), nullable=True),
        sa.Column("admin_notes", sa.String(1000), nullable=True),
        sa.Column("registration_fee_paid", sa.Boolean(), nullable=False),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["assigned_class_id"], ["course_classes.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_enrollment_requests_id"), "enrollment_requests", ["id"], unique=False)
    op.create_index(op.f("ix_enrollment_requests_student_id"), "enrollment_requests", ["student_id"], unique=False)
    op.create_index(op.f("ix_enrollment_requests_course_id"), "enrollment_requests", ["course_id"], unique=False)
    op.create_index(op.f("ix_enrollment_requests_status"), "enrollment_requests", ["status"], unique=False)
    op.create_index(op.f("ix_enrollment_requests_request_date"), "enrollment_requests", ["request_date"], unique=False)
    op.create_index(
        op.f("ix_enrollment_requests_registration_fee_paid"),
        "enrollment_requests",
        ["registration_fee_paid"],
        unique=False,
    )
    op.create_index(op.f("ix_enrollment_requests_expires_at"), "enrollment_requests", ["expires_at"], unique=False)
    op.create_index("ix_enrollment_status_fee", "enrollment_requests", ["status", "registration_fee_paid"])
    op.create_index(
        "uq_enrollment_active_student_course",
        "enrollment_requests",
        ["student_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
    )

    # Payment ledger
    op.create_table(
        "payments",
        sa.Column("enrollment_id", sa.UUID(), nullable=True),
        sa.Column("student_id", sa.UUID(), nullable=False),
        sa.Column("course_id", sa.UUID(), nullable=False),
        sa.Column("registration_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "payment_status",
            _enum("payment_status", "pending", "completed", "cancelled", "refunded"),
            nullable=False,
        ),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.Column("refund_date", sa.DateTime(), nullable=True),
        sa.Column("refunded_by", sa.UUID(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["enrollment_id"], ["enrollment_requests.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "course_id", name="uq_payment_student_course"),
    )
    op.create_index(op.f("ix_payments_id"), "payments", ["id"], unique=False)
    op.create_index(op.f("ix_payments_enrollment_id"), "payments", ["enrollment_id"], unique=False)
    op.create_index(op.f("ix_payments_student_id"), "payments", ["student_id"], unique=False)
    op.create_index(op.f("ix_payments_course_id"), "payments", ["course_id"], unique=False)
    op.create_index(op.f("ix_payments_payment_status"), "payments", ["payment_status"], unique=False)

    op.create_table(
        "payment_installments",
        sa.Column("payment_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("amount_type", _enum("amount_type", "fixed", "percentage"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum("installment_status", "unpaid", "paid", "refunded"), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=False),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("refund_date", sa.DateTime(), nullable=True),
        sa.Column("is_initial_fee", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id", "name", name="uq_installment_payment_name"),
    )
    op.create_index(op.f("ix_payment_installments_id"), "payment_installments", ["id"], unique=False)
    op.create_index(op.f("ix_payment_installments_payment_id"), "payment_installments", ["payment_id"], unique=False)
    op.create_index(op.f("ix_payment_installments_status"), "payment_installments", ["status"], unique=False)

    # Templates
    op.create_table(
        "installment_templates",
        sa.Column("course_id", sa.UUID(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_installment_templates_id"), "installment_templates", ["id"], unique=False)
    op.create_index(op.f("ix_installment_templates_course_id"), "installment_templates", ["course_id"], unique=True)

    op.create_table(
        "installment_template_entries",
        sa.Column("template_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("amount_type", _enum("amount_type", "fixed", "percentage"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_offset_days", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["template_id"], ["installment_templates.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("template_id", "name", name="uq_template_entry_name"),
    )
    op.create_index(op.f("ix_installment_template_entries_id"), "installment_template_entries", ["id"], unique=False)
    op.create_index(
        op.f("ix_installment_template_entries_template_id"),
        "installment_template_entries",
        ["template_id"],
        unique=False,
    )

    # Settings and audit
    op.create_table(
        "center_settings",
        sa.Column("center_name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("registration_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("enrollment_validity_hours", sa.Integer(), nullable=False),
        sa.Column("payment_instructions", sa.Text(), nullable=True),
        sa.Column("email_templates", postgresql.JSONB(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_center_settings_id"), "center_settings", ["id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("performed_by", sa.String(64), nullable=False),
        sa.Column("target_id", sa.UUID(), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_logs_id"), "audit_logs", ["id"], unique=False)
    op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"], unique=False)
    op.create_index(op.f("ix_audit_logs_performed_by"), "audit_logs", ["performed_by"], unique=False)
    op.create_index(op.f("ix_audit_logs_target_id"), "audit_logs", ["target_id"], unique=False)
    op.create_index(op.f("ix_audit_logs_target_type"), "audit_logs", ["target_type"], unique=False)


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("center_settings")
    op.drop_table("installment_template_entries")
    op.drop_table("installment_templates")
    op.drop_table("payment_installments")
    op.drop_table("payments")
    op.drop_index("uq_enrollment_active_student_course", table_name="enrollment_requests")
    op.drop_table("enrollment_requests")
    op.drop_table("enrolled_courses")
    op.drop_table("class_students")
    op.drop_table("course_classes")
    op.drop_table("courses")
    op.drop_table("users")
    for enum_name in ("amount_type", "installment_status", "payment_status", "enrollment_status", "user_role"):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
