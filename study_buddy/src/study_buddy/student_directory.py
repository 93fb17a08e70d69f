"""
Student Directory

Dashboard data for schools and admins: students together with their most
recent study sessions. Callers authenticate with the session token issued by
the auth gate.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from study_buddy import config
from study_buddy.auth_gate import public_school
from study_buddy.errors import AuthError, BadRequestError, InternalError
from study_buddy.session_tokens import ROLE_ADMIN, ROLE_SCHOOL, SessionTokenService

logger = logging.getLogger(__name__)


class StudentDirectory:
    """Fetch students for the school and admin dashboards."""

    def __init__(self, supabase_client, token_service: SessionTokenService):
        self.supabase = supabase_client
        self.tokens = token_service

    async def fetch(
        self,
        user_type: Optional[str],
        session_token: Optional[str],
        school_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if user_type == ROLE_SCHOOL:
            return await self.fetch_for_school(school_id, session_token)
        if user_type == ROLE_ADMIN:
            return await self.fetch_for_admin(session_token)
        raise BadRequestError("Invalid user type")

    async def fetch_for_school(self, school_id: Optional[str], session_token: Optional[str]) -> Dict[str, Any]:
        """Non-banned students of one school, newest first, each with recent sessions."""
        if not school_id:
            raise AuthError("Invalid school session")
        self.tokens.verify(session_token, role=ROLE_SCHOOL, subject=school_id, error_message="Invalid school session")

        try:
            school = self.supabase.table("schools") \
                .select("id, name, is_banned, fee_paid") \
                .eq("id", school_id) \
                .maybe_single() \
                .execute()
        except Exception as e:
            logger.error(f"[StudentDirectory] School lookup error: {e}", exc_info=True)
            raise AuthError("Invalid school session")

        school = school.data if school is not None else None
        if not school:
            raise AuthError("Invalid school session")
        if school.get("is_banned"):
            raise AuthError("School is banned", status_code=403)

        try:
            students = self.supabase.table("students") \
                .select("*") \
                .eq("school_id", school_id) \
                .eq("is_banned", False) \
                .order("created_at", desc=True) \
                .execute()
        except Exception as e:
            logger.error(f"[StudentDirectory] Error fetching students: {e}", exc_info=True)
            raise InternalError("Failed to fetch students")

        rows = students.data or []
        sessions = self._recent_sessions([student["id"] for student in rows])
        students_with_sessions = [
            {**student, "study_sessions": sessions.get(student["id"], [])}
            for student in rows
        ]

        logger.info(f"[StudentDirectory] School {school_id[:8]}...: {len(students_with_sessions)} students")
        return {"students": students_with_sessions, "school": school}

    async def fetch_for_admin(self, session_token: Optional[str]) -> Dict[str, Any]:
        """All students (with school name) and all schools."""
        claims = self.tokens.verify(session_token, role=ROLE_ADMIN, error_message="Invalid admin session")

        try:
            admin = self.supabase.table("admins") \
                .select("id, name, role") \
                .eq("id", claims["sub"]) \
                .maybe_single() \
                .execute()
        except Exception as e:
            logger.error(f"[StudentDirectory] Admin lookup error: {e}", exc_info=True)
            raise AuthError("Invalid admin session")

        if admin is None or not admin.data:
            raise AuthError("Invalid admin session")

        try:
            students = self.supabase.table("students") \
                .select("*, schools(name)") \
                .order("created_at", desc=True) \
                .execute()
        except Exception as e:
            logger.error(f"[StudentDirectory] Error fetching students: {e}", exc_info=True)
            raise InternalError("Failed to fetch students")

        try:
            schools = self.supabase.table("schools") \
                .select("*") \
                .order("created_at", desc=True) \
                .execute()
        except Exception as e:
            logger.error(f"[StudentDirectory] Error fetching schools: {e}", exc_info=True)
            raise InternalError("Failed to fetch schools")

        return {
            "students": students.data or [],
            "schools": [public_school(school) for school in (schools.data or [])],
        }

    def _recent_sessions(self, student_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Most recent sessions per student (newest first), fetched in one query. Non-fatal."""
        if not student_ids:
            return {}
        try:
            result = self.supabase.table("study_sessions") \
                .select("*") \
                .in_("student_id", student_ids) \
                .order("created_at", desc=True) \
                .execute()
        except Exception as e:
            logger.warning(f"⚠️ [StudentDirectory] Could not load study sessions for {len(student_ids)} students: {e}")
            return {}

        by_student: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for session in result.data or []:
            recent = by_student[session["student_id"]]
            if len(recent) < config.HISTORY_SESSION_LIMIT:
                recent.append(session)
        return dict(by_student)
