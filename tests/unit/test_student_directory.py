"""
Unit Tests for the Student Directory
"""

import pytest

from study_buddy.errors import AuthError, BadRequestError, InternalError
from study_buddy.session_tokens import ROLE_ADMIN, ROLE_SCHOOL
from study_buddy.student_directory import StudentDirectory


class TestStudentDirectory:
    """Test suite for StudentDirectory.fetch."""

    @pytest.fixture
    def directory(self, fake_supabase, token_service):
        return StudentDirectory(fake_supabase, token_service)

    @pytest.fixture
    def school_token(self, token_service):
        return token_service.issue("school-1", ROLE_SCHOOL, "ips855108")

    @pytest.fixture
    def admin_token(self, token_service):
        return token_service.issue("admin-1", ROLE_ADMIN, "superadmin")

    @pytest.mark.asyncio
    async def test_school_students_newest_first(self, directory, school_token):
        result = await directory.fetch("school", school_token, school_id="school-1")

        assert [s["id"] for s in result["students"]] == ["student-2", "student-1"]
        assert result["school"]["name"] == "Insight Public School"

    @pytest.mark.asyncio
    async def test_school_students_carry_recent_sessions(self, directory, school_token):
        result = await directory.fetch("school", school_token, school_id="school-1")

        rahul = next(s for s in result["students"] if s["id"] == "student-1")
        assert [s["id"] for s in rahul["study_sessions"]] == ["session-2", "session-1"]
        priya = next(s for s in result["students"] if s["id"] == "student-2")
        assert priya["study_sessions"] == []

    @pytest.mark.asyncio
    async def test_sessions_loaded_in_one_query(self, directory, school_token, fake_supabase):
        await directory.fetch("school", school_token, school_id="school-1")

        assert len(fake_supabase.calls_to("study_sessions", "select")) == 1

    @pytest.mark.asyncio
    async def test_sessions_capped_per_student(self, directory, school_token, fake_supabase):
        fake_supabase.tables["study_sessions"].extend(
            {"id": f"extra-{i}", "student_id": "student-2", "topic": f"Topic {i}",
             "created_at": f"2025-03-{30 - i:02d}T08:00:00+00:00"}
            for i in range(12)
        )

        result = await directory.fetch("school", school_token, school_id="school-1")

        sessions = {s["id"]: s["study_sessions"] for s in result["students"]}
        assert [s["id"] for s in sessions["student-2"]] == [f"extra-{i}" for i in range(10)]
        assert len(sessions["student-1"]) == 2

    @pytest.mark.asyncio
    async def test_session_fetch_failure_is_non_fatal(self, directory, school_token, fake_supabase):
        fake_supabase.failing_tables.add("study_sessions")

        result = await directory.fetch("school", school_token, school_id="school-1")

        assert all(s["study_sessions"] == [] for s in result["students"])

    @pytest.mark.asyncio
    async def test_token_for_other_school_rejected(self, directory, school_token):
        with pytest.raises(AuthError) as exc_info:
            await directory.fetch("school", school_token, school_id="school-2")

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Invalid school session"

    @pytest.mark.asyncio
    async def test_banned_school(self, directory, token_service):
        token = token_service.issue("school-2", ROLE_SCHOOL)

        with pytest.raises(AuthError) as exc_info:
            await directory.fetch("school", token, school_id="school-2")

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "School is banned"

    @pytest.mark.asyncio
    async def test_deleted_school(self, directory, token_service):
        token = token_service.issue("school-9", ROLE_SCHOOL)

        with pytest.raises(AuthError):
            await directory.fetch("school", token, school_id="school-9")

    @pytest.mark.asyncio
    async def test_admin_sees_everything(self, directory, admin_token):
        result = await directory.fetch("admin", admin_token)

        assert len(result["students"]) == 3
        assert [s["id"] for s in result["schools"]] == ["school-2", "school-1"]
        assert all("password_hash" not in s for s in result["schools"])

    @pytest.mark.asyncio
    async def test_school_token_cannot_fetch_admin_view(self, directory, school_token):
        with pytest.raises(AuthError) as exc_info:
            await directory.fetch("admin", school_token)

        assert exc_info.value.message == "Invalid admin session"

    @pytest.mark.asyncio
    async def test_admin_schools_failure(self, directory, admin_token, fake_supabase):
        fake_supabase.failing_tables.add("schools")

        with pytest.raises(InternalError) as exc_info:
            await directory.fetch("admin", admin_token)

        assert exc_info.value.message == "Failed to fetch schools"

    @pytest.mark.asyncio
    async def test_invalid_user_type(self, directory, school_token):
        with pytest.raises(BadRequestError) as exc_info:
            await directory.fetch("student", school_token)

        assert exc_info.value.message == "Invalid user type"
