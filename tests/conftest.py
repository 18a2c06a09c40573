"""
Pytest Configuration and Shared Fixtures

The app is pointed at an in-memory SQLite database (shared through a
StaticPool) and a mongomock client BEFORE any app module is imported, so
every service, route and singleton binds to the test stores.

Fixtures:
---------
- clean_stores: (autouse) empties every table and collection after a test
- make_user / make_student: insert accounts and return their ids
- company / tpo / admin: staff Actors backed by real user rows
- drive_data: DriveCreate factory with sane defaults
- auth_headers: bearer headers for a user id
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEBUG"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"

import itertools
from datetime import timedelta

import mongomock
import pytest
from sqlalchemy import insert, delete

from app.db.mongodb import set_mongo_client, get_mongo_db, init_mongo_indexes, COLLECTIONS

set_mongo_client(mongomock.MongoClient())

from app.core.auth import create_access_token
from app.db.postgres import get_db_session, init_postgres_schema
from app.db.tables import metadata, users, students
from app.models.models import Actor
from app.schemas.schemas import DriveCreate, EligibilityIn
from app.utils.timeutils import utcnow

init_postgres_schema()
init_mongo_indexes()

_ids = itertools.count(1)


@pytest.fixture(autouse=True)
def clean_stores():
    yield
    with get_db_session() as db:
        for table in reversed(metadata.sorted_tables):
            db.execute(delete(table))
    mongo = get_mongo_db()
    for name in COLLECTIONS.values():
        mongo[name].delete_many({})


def _insert_user(role, is_active=True, is_approved=True, company_name=None):
    n = next(_ids)
    with get_db_session() as db:
        result = db.execute(insert(users).values(
            email=f"{role}{n}@campus.test",
            name=f"{role.title()} {n}",
            role=role,
            is_active=is_active,
            is_approved=is_approved,
            company_name=company_name,
            created_at=utcnow(),
        ))
        return result.inserted_primary_key[0]


@pytest.fixture
def make_user():
    """Insert a bare account: make_user("tpo") -> user_id."""
    return _insert_user


@pytest.fixture
def make_student():
    """Insert a student account with an academic profile and return its id."""
    def _make(cgpa=8.0, backlogs=0, branch="CSE", year="4th Year", is_active=True, is_approved=True):
        user_id = _insert_user("student", is_active=is_active, is_approved=is_approved)
        with get_db_session() as db:
            db.execute(insert(students).values(
                user_id=user_id,
                roll_number=f"R{user_id:04d}",
                branch=branch,
                year=year,
                cgpa=cgpa,
                backlogs=backlogs,
            ))
        return user_id
    return _make


@pytest.fixture
def company():
    return Actor(user_id=_insert_user("company", company_name="Acme"), role="company")


@pytest.fixture
def tpo():
    return Actor(user_id=_insert_user("tpo"), role="tpo")


@pytest.fixture
def admin():
    return Actor(user_id=_insert_user("admin"), role="admin")


@pytest.fixture
def drive_data():
    """DriveCreate factory; eligibility keywords go into the rule."""
    def _make(company_name="Acme", min_cgpa=7.5, max_backlogs=0, allowed_branches=("CSE",), min_year=3,
              **overrides):
        values = {
            "company_name": company_name,
            "position": "Software Engineer",
            "description": "Backend development",
            "ctc": "12 LPA",
            "location": "Bengaluru",
            "deadline": utcnow() + timedelta(days=7),
            "eligibility": EligibilityIn(
                min_cgpa=min_cgpa,
                max_backlogs=max_backlogs,
                allowed_branches=list(allowed_branches),
                min_year=min_year,
            ),
        }
        values.update(overrides)
        return DriveCreate(**values)
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}
    return _headers
