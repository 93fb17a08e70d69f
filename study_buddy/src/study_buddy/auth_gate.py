"""
Auth Gate

Login for admin and school principals plus admin-only school account
management. All database access goes through a service-role Supabase client,
so every caller-facing check (rate limit, suspension, password, session token)
is enforced here.

Login flow:
    RECEIVED -> RATE_CHECKED -> PRINCIPAL_LOOKED_UP -> PASSWORD_VERIFIED
             -> TOKEN_ISSUED -> LOGGED
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from study_buddy.credentials import (
    generate_secure_credentials,
    hash_password,
    needs_rehash,
    verify_password,
)
from study_buddy.errors import AuthError, BadRequestError, RateLimitError
from study_buddy.rate_limiter import LoginRateLimiter
from study_buddy.session_tokens import ROLE_ADMIN, ROLE_SCHOOL, SessionTokenService

logger = logging.getLogger(__name__)

# user type -> (table, natural identifier column)
PRINCIPAL_TABLES = {
    ROLE_ADMIN: ("admins", "admin_id"),
    ROLE_SCHOOL: ("schools", "school_id"),
}

# Columns an admin may change through update_school
SCHOOL_UPDATABLE_FIELDS = {
    "name",
    "district",
    "state",
    "email",
    "contact_whatsapp",
    "is_banned",
    "fee_paid",
}


def mask(value: Optional[str]) -> str:
    """Shorten an identifier for logging."""
    if not value:
        return "<none>"
    return value[:3] + "..." if len(value) > 3 else value


def public_school(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """School row without its credential column."""
    if row is None:
        return None
    return {k: v for k, v in row.items() if k != "password_hash"}


class AuthGate:
    """
    Credential checks and privileged school management.

    Args:
        supabase_client: service-role Supabase client
        token_service: issues/verifies session tokens
        rate_limiter: login limiter (one per process)
    """

    def __init__(
        self,
        supabase_client,
        token_service: SessionTokenService,
        rate_limiter: Optional[LoginRateLimiter] = None,
    ):
        self.supabase = supabase_client
        self.tokens = token_service
        self.rate_limiter = rate_limiter or LoginRateLimiter()

    # ==================== Dispatch ====================

    async def handle(
        self,
        action: Optional[str],
        client_ip: str,
        user_type: Optional[str] = None,
        identifier: Optional[str] = None,
        password: Optional[str] = None,
        school_data: Optional[Dict[str, Any]] = None,
        admin_credentials: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Route one auth request to its action handler."""
        if action == "login":
            return await self.login(user_type, identifier, password, client_ip)
        if action == "create_school":
            return await self.create_school(admin_credentials, school_data)
        if action == "update_school":
            return await self.update_school(admin_credentials, school_data)
        if action == "delete_school":
            return await self.delete_school(admin_credentials, school_data)
        if action == "get_students_for_school":
            return await self.get_students_for_school(school_data, admin_credentials)
        raise BadRequestError("Invalid action")

    # ==================== Login ====================

    async def login(
        self,
        user_type: Optional[str],
        identifier: Optional[str],
        password: Optional[str],
        client_ip: str,
    ) -> Dict[str, Any]:
        if user_type not in PRINCIPAL_TABLES:
            raise BadRequestError("Invalid user type")

        rate_key = f"{user_type}:{identifier or client_ip}"
        decision = self.rate_limiter.check(rate_key)
        if not decision.allowed:
            logger.warning(f"[AuthGate] Login blocked for {user_type}:{mask(identifier)} ({decision.wait_seconds}s left)")
            raise RateLimitError(
                f"Too many login attempts. Please try again in {decision.wait_seconds} seconds.",
                wait_seconds=decision.wait_seconds,
            )

        table, id_column = PRINCIPAL_TABLES[user_type]

        if not identifier:
            self.rate_limiter.record(rate_key, False)
            raise AuthError("Invalid credentials")

        try:
            principal = self._find_one(table, id_column, identifier)
        except Exception as e:
            logger.error(f"[AuthGate] {user_type} lookup error: {e}", exc_info=True)
            self.rate_limiter.record(rate_key, False)
            self._audit(identifier, user_type, client_ip, success=False)
            raise AuthError("Authentication failed")

        if not principal:
            self.rate_limiter.record(rate_key, False)
            self._audit(identifier, user_type, client_ip, success=False)
            raise AuthError("Invalid credentials")

        # Suspension is reported before the password is looked at and is not a failed attempt
        if user_type == ROLE_SCHOOL and principal.get("is_banned"):
            logger.info(f"[AuthGate] Suspended school tried to log in: {mask(identifier)}")
            self._audit(identifier, user_type, client_ip, success=False)
            raise AuthError("This school account has been suspended", status_code=403)

        stored = principal.get("password_hash")
        valid = await asyncio.to_thread(verify_password, password or "", stored)
        if not valid:
            self.rate_limiter.record(rate_key, False)
            self._audit(identifier, user_type, client_ip, success=False)
            raise AuthError("Invalid credentials")

        self.rate_limiter.record(rate_key, True)
        session_token = self.tokens.issue(principal["id"], user_type, identifier)

        if needs_rehash(stored):
            await self._upgrade_credential(table, principal["id"], password)

        self._audit(identifier, user_type, client_ip, success=True)
        logger.info(f"✅ [AuthGate] {user_type} login: {mask(identifier)}")

        if user_type == ROLE_ADMIN:
            user = {
                "id": principal["id"],
                "name": principal.get("name"),
                "role": principal.get("role"),
                "adminId": principal.get("admin_id"),
            }
        else:
            user = {
                "id": principal["id"],
                "schoolId": principal.get("school_id"),
                "name": principal.get("name"),
                "feePaid": principal.get("fee_paid"),
            }

        return {"success": True, "user": user, "sessionToken": session_token}

    # ==================== School management ====================

    async def create_school(
        self,
        admin_credentials: Optional[Dict[str, Any]],
        school_data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Provision a school account; the plaintext password is returned exactly once."""
        admin = self.require_admin(admin_credentials)
        data = school_data or {}

        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("School name is required")

        school_id, password = generate_secure_credentials()
        password_hash = await asyncio.to_thread(hash_password, password)

        row = {
            "school_id": school_id,
            "password_hash": password_hash,
            "name": name,
            "district": data.get("district") or None,
            "state": data.get("state") or None,
            "email": data.get("email") or None,
            "contact_whatsapp": data.get("contact_whatsapp") or None,
        }

        try:
            result = self.supabase.table("schools").insert(row).execute()
        except Exception as e:
            logger.error(f"[AuthGate] Create school error: {e}", exc_info=True)
            raise BadRequestError("Could not create school")

        new_school = result.data[0] if result.data else None
        logger.info(f"✅ [AuthGate] Admin {mask(admin.get('id'))} created school {school_id}")

        return {
            "success": True,
            "school": public_school(new_school),
            "credentials": {"id": school_id, "password": password},
        }

    async def update_school(
        self,
        admin_credentials: Optional[Dict[str, Any]],
        school_data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        self.require_admin(admin_credentials)
        data = school_data or {}

        school_uuid = data.get("schoolId")
        if not school_uuid:
            raise BadRequestError("schoolId is required")

        updates = {k: v for k, v in (data.get("updates") or {}).items() if k in SCHOOL_UPDATABLE_FIELDS}
        if not updates:
            raise BadRequestError("No valid fields to update")

        try:
            self.supabase.table("schools").update(updates).eq("id", school_uuid).execute()
        except Exception as e:
            logger.error(f"[AuthGate] Update school error: {e}", exc_info=True)
            raise BadRequestError("Could not update school")

        logger.info(f"[AuthGate] Updated school {school_uuid}: {sorted(updates)}")
        return {"success": True}

    async def delete_school(
        self,
        admin_credentials: Optional[Dict[str, Any]],
        school_data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        self.require_admin(admin_credentials)

        school_uuid = (school_data or {}).get("schoolId")
        if not school_uuid:
            raise BadRequestError("schoolId is required")

        try:
            self.supabase.table("schools").delete().eq("id", school_uuid).execute()
        except Exception as e:
            logger.error(f"[AuthGate] Delete school error: {e}", exc_info=True)
            raise BadRequestError("Could not delete school")

        logger.info(f"[AuthGate] Deleted school {school_uuid}")
        return {"success": True}

    async def get_students_for_school(
        self,
        school_data: Optional[Dict[str, Any]],
        admin_credentials: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        List a school's students.

        Authorized either by the school's own session token (schoolData) or by
        admin credentials.
        """
        data = school_data or {}
        school_uuid = data.get("schoolUuid")

        if admin_credentials:
            self.require_admin(admin_credentials)
        else:
            session_token = data.get("sessionToken")
            if not school_uuid or not session_token:
                raise AuthError("School authentication required")
            self.tokens.verify(
                session_token,
                role=ROLE_SCHOOL,
                subject=school_uuid,
                error_message="Invalid school session",
            )

        if not school_uuid:
            raise BadRequestError("schoolUuid is required")

        try:
            result = self.supabase.table("students").select("*").eq("school_id", school_uuid).execute()
        except Exception as e:
            logger.error(f"[AuthGate] Get students error: {e}", exc_info=True)
            raise BadRequestError("Could not fetch students")

        return {"success": True, "students": result.data or []}

    # ==================== Helpers ====================

    def require_admin(self, admin_credentials: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Verify admin credentials and return the admin row.

        The token must be a valid admin token issued to `adminId`, and the
        admin row must still exist.
        """
        creds = admin_credentials or {}
        admin_id = creds.get("adminId")
        session_token = creds.get("sessionToken")

        if not admin_id or not session_token:
            raise AuthError("Admin authentication required")

        self.tokens.verify(
            session_token,
            role=ROLE_ADMIN,
            subject=admin_id,
            error_message="Invalid admin session",
        )

        try:
            admin = self._find_one("admins", "id", admin_id, columns="id")
        except Exception as e:
            logger.error(f"[AuthGate] Admin session lookup error: {e}", exc_info=True)
            raise AuthError("Invalid admin session")

        if not admin:
            raise AuthError("Invalid admin session")
        return admin

    def _find_one(self, table: str, column: str, value: str, columns: str = "*") -> Optional[Dict[str, Any]]:
        result = self.supabase.table(table).select(columns).eq(column, value).maybe_single().execute()
        # maybe_single() yields no response object at all for zero rows on some client versions
        return result.data if result is not None else None

    async def _upgrade_credential(self, table: str, row_id: str, password: str) -> None:
        """Replace a legacy credential with a bcrypt hash. Failure is non-fatal."""
        try:
            new_hash = await asyncio.to_thread(hash_password, password)
            self.supabase.table(table).update({"password_hash": new_hash}).eq("id", row_id).execute()
            logger.info(f"[AuthGate] Upgraded legacy credential in {table}")
        except Exception as e:
            logger.warning(f"⚠️ [AuthGate] Could not upgrade legacy credential: {e}")

    def _audit(self, identifier: str, user_type: str, client_ip: str, success: bool) -> None:
        try:
            self.supabase.table("login_attempts").insert({
                "identifier": identifier,
                "attempt_type": user_type,
                "ip_address": client_ip,
                "success": success,
            }).execute()
        except Exception as e:
            logger.warning(f"⚠️ [AuthGate] Could not write login audit row: {e}")
