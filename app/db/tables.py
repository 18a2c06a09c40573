"""
PostgreSQL schema for the drive / application lifecycle.

Tables:
1. users               - every account (student, company, tpo, admin)
2. students            - academic profile of student accounts (1:1 with users)
3. drives              - hiring drives with their eligibility rule and counters
4. drive_applicants    - per-drive roster, one row per (drive, student)
5. applications        - canonical candidacy record, one per (student, drive)
6. application_timeline - ordered process steps of an application

Uniqueness that protects against concurrent requests lives HERE, not in
application code:
- one application per (student, drive)
- one roster row per (drive, student)
- one active drive per company name (partial unique index)
"""

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Float, Boolean, DateTime, Text,
    JSON, ForeignKey, UniqueConstraint, Index, text,
)

metadata = MetaData()


users = Table(
    "users", metadata,
    Column("user_id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(200), nullable=False),
    Column("role", String(20), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("is_approved", Boolean, nullable=False, default=False),
    Column("department", String(100)),
    Column("company_name", String(200)),
    Column("created_at", DateTime, nullable=False),
)

students = Table(
    "students", metadata,
    Column("user_id", Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True),
    Column("roll_number", String(50)),
    Column("branch", String(100)),
    Column("year", String(20)),
    Column("cgpa", Float),
    Column("backlogs", Integer, nullable=False, default=0),
)

drives = Table(
    "drives", metadata,
    Column("drive_id", Integer, primary_key=True, autoincrement=True),
    Column("company_name", String(200), nullable=False),
    Column("position", String(200), nullable=False),
    Column("description", Text, nullable=False),
    Column("ctc", String(100), nullable=False),
    Column("location", String(200), nullable=False),
    Column("job_type", String(20), nullable=False, default="Full-time"),
    Column("work_mode", String(20), nullable=False, default="On-site"),
    Column("requirements", JSON, nullable=False, default=list),
    Column("external_application_url", String(500)),
    Column("deadline", DateTime, nullable=False),
    Column("min_cgpa", Float, nullable=False, default=0),
    Column("allowed_branches", JSON, nullable=False, default=list),
    Column("max_backlogs", Integer, nullable=False, default=0),
    Column("min_year", Integer, nullable=False, default=1),
    Column("status", String(20), nullable=False, default="active"),
    Column("is_visible", Boolean, nullable=False, default=True),
    Column("priority", String(10), nullable=False, default="medium"),
    Column("shortlisted_count", Integer, nullable=False, default=0),
    Column("selected_count", Integer, nullable=False, default=0),
    Column("posted_by", Integer, ForeignKey("users.user_id"), nullable=False),
    Column("posted_by_role", String(20), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Index(
        "uq_drives_active_company", "company_name",
        unique=True,
        postgresql_where=text("status = 'active'"),
        sqlite_where=text("status = 'active'"),
    ),
    Index("ix_drives_status_deadline", "status", "deadline"),
)

drive_applicants = Table(
    "drive_applicants", metadata,
    Column("entry_id", Integer, primary_key=True, autoincrement=True),
    Column("drive_id", Integer, ForeignKey("drives.drive_id", ondelete="CASCADE"), nullable=False),
    Column("student_id", Integer, ForeignKey("users.user_id"), nullable=False),
    Column("applied_at", DateTime, nullable=False),
    Column("status", String(20), nullable=False, default="pending"),
    UniqueConstraint("drive_id", "student_id", name="uq_drive_applicants_drive_student"),
)

applications = Table(
    "applications", metadata,
    Column("application_id", Integer, primary_key=True, autoincrement=True),
    Column("student_id", Integer, ForeignKey("users.user_id"), nullable=False),
    Column("drive_id", Integer, ForeignKey("drives.drive_id", ondelete="CASCADE"), nullable=False),
    Column("company_id", Integer, ForeignKey("users.user_id"), nullable=False),
    Column("status", String(20), nullable=False, default="applied"),
    Column("feedback", Text, nullable=False, default=""),
    Column("notes", Text),
    Column("interview_schedule", JSON),
    Column("applied_at", DateTime, nullable=False),
    Column("last_updated", DateTime, nullable=False),
    Column("updated_by", Integer, ForeignKey("users.user_id")),
    UniqueConstraint("student_id", "drive_id", name="uq_applications_student_drive"),
    Index("ix_applications_drive_status", "drive_id", "status"),
)

application_timeline = Table(
    "application_timeline", metadata,
    Column("application_id", Integer, ForeignKey("applications.application_id", ondelete="CASCADE"),
           primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("step", String(100), nullable=False),
    Column("date", DateTime, nullable=False),
    Column("completed", Boolean, nullable=False, default=False),
    Column("notes", Text),
)
