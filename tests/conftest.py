"""
Shared fixtures: an in-memory stand-in for the Supabase query builder, a
controllable clock and a session token service with a fixed secret.
"""

import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from study_buddy.credentials import hash_password
from study_buddy.session_tokens import SessionTokenService


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Records one chained PostgREST-style call and runs it against FakeSupabase.tables."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: List[tuple] = []
        self.order_by: Optional[tuple] = None
        self.row_limit: Optional[int] = None
        self.single = False

    def select(self, columns: str = "*"):
        self.op, self.columns = "select", columns
        return self

    def insert(self, row: Dict[str, Any]):
        self.op, self.payload = "insert", row
        return self

    def update(self, values: Dict[str, Any]):
        self.op, self.payload = "update", values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, "eq", value))
        return self

    def in_(self, column: str, values: List[Any]):
        self.filters.append((column, "in", list(values)))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, n: int):
        self.row_limit = n
        return self

    def maybe_single(self):
        self.single = True
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        for column, op, value in self.filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
        return True

    def execute(self):
        self.db.calls.append((self.table_name, self.op, self.payload, list(self.filters)))
        if self.table_name in self.db.failing_tables:
            raise RuntimeError(f"simulated failure on {self.table_name}")

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            row = {"id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc).isoformat(), **self.payload}
            rows.append(row)
            return FakeResponse([copy.deepcopy(row)])

        matched = [row for row in rows if self._matches(row)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(matched))

        if self.op == "delete":
            self.db.tables[self.table_name] = [row for row in rows if not self._matches(row)]
            return FakeResponse(copy.deepcopy(matched))

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        matched = copy.deepcopy(matched)

        if self.single:
            # Mirrors supabase-py: no response object when nothing matched
            return FakeResponse(matched[0]) if matched else None
        return FakeResponse(matched)


class FakeSupabase:
    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = tables or {}
        self.failing_tables = set()
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def calls_to(self, table: str, op: Optional[str] = None) -> List[tuple]:
        return [c for c in self.calls if c[0] == table and (op is None or c[1] == op)]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def iso_days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


ADMIN_PASSWORD = "Adm1n-Pass!"
SCHOOL_PASSWORD = "Sch00l-Pass!"


@pytest.fixture
def admin_password():
    return ADMIN_PASSWORD


@pytest.fixture
def school_password():
    return SCHOOL_PASSWORD


@pytest.fixture(scope="session")
def admin_password_hash():
    return hash_password(ADMIN_PASSWORD)


@pytest.fixture(scope="session")
def school_password_hash():
    return hash_password(SCHOOL_PASSWORD)


@pytest.fixture
def fake_supabase(admin_password_hash, school_password_hash):
    return FakeSupabase({
        "admins": [
            {"id": "admin-1", "admin_id": "superadmin", "password_hash": admin_password_hash,
             "name": "Asha Verma", "role": "super_admin"},
        ],
        "schools": [
            {"id": "school-1", "school_id": "ips855108", "password_hash": school_password_hash,
             "name": "Insight Public School", "district": "Kishanganj", "state": "Bihar",
             "is_banned": False, "fee_paid": True, "created_at": iso_days_ago(30)},
            {"id": "school-2", "school_id": "banned01", "password_hash": school_password_hash,
             "name": "Closed Academy", "is_banned": True, "fee_paid": False, "created_at": iso_days_ago(20)},
        ],
        "students": [
            {"id": "student-1", "full_name": "Rahul Kumar", "school_id": "school-1",
             "is_banned": False, "created_at": iso_days_ago(10)},
            {"id": "student-2", "full_name": "Priya Singh", "school_id": "school-1",
             "is_banned": False, "created_at": iso_days_ago(5)},
            {"id": "student-3", "full_name": "Banned Kid", "school_id": "school-1",
             "is_banned": True, "created_at": iso_days_ago(3)},
        ],
        "study_sessions": [
            {"id": "session-1", "student_id": "student-1", "topic": "Photosynthesis", "subject": "Biology",
             "understanding_level": "average", "weak_areas": ["Chlorophyll"], "strong_areas": ["Light reaction"],
             "created_at": iso_days_ago(2)},
            {"id": "session-2", "student_id": "student-1", "topic": "Newton's Laws", "subject": "Physics",
             "understanding_level": "good", "weak_areas": ["Friction"], "strong_areas": ["Inertia"],
             "created_at": iso_days_ago(1)},
        ],
        "login_attempts": [],
    })


@pytest.fixture
def token_service():
    return SessionTokenService(secret="test-session-secret", ttl_hours=1)


@pytest.fixture
def clock():
    return FakeClock()
