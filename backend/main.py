"""
FastAPI Backend for the Hinglish Study Buddy

Provides JSON endpoints for:
- Admin / school login and school account management (secure-auth)
- School and admin dashboards (get-students)
- The AI study buddy chat (study-chat)

All database access uses the Supabase service-role client.
"""

import logging
import signal
import sys
import time
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from study_buddy import config
from study_buddy.ai_gateway import AIGateway
from study_buddy.auth_gate import AuthGate
from study_buddy.errors import StudyBuddyError
from study_buddy.prompts import TranscriptEntry
from study_buddy.student_directory import StudentDirectory
from study_buddy.study_history import StudyHistoryStore
from study_buddy.tutor_pipeline import FALLBACK_REPLY, TutorPipeline, fallback_reply_for

from lib.logger import setup_logging, get_logger
from lib.supabase_client import get_supabase_client
from lib.auth import get_bearer_token, get_client_ip, get_token_service

setup_logging(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO), use_colors=True)

logger = get_logger("backend.main")

# Singletons: built on first use so a missing env var fails the request, not the import
_auth_gate: Optional[AuthGate] = None
_student_directory: Optional[StudentDirectory] = None
_tutor_pipeline: Optional[TutorPipeline] = None


def get_auth_gate() -> AuthGate:
    """Get or create singleton AuthGate (owns the login rate limiter)."""
    global _auth_gate
    if _auth_gate is None:
        _auth_gate = AuthGate(get_supabase_client(), get_token_service())
        logger.success("Auth gate initialized")
    return _auth_gate


def get_student_directory() -> StudentDirectory:
    global _student_directory
    if _student_directory is None:
        _student_directory = StudentDirectory(get_supabase_client(), get_token_service())
    return _student_directory


def get_tutor_pipeline() -> TutorPipeline:
    """Get or create singleton TutorPipeline (owns the chat rate limiter)."""
    global _tutor_pipeline
    if _tutor_pipeline is None:
        try:
            history_store = StudyHistoryStore(get_supabase_client())
        except ValueError as e:
            logger.warning("Supabase not configured, chatting without student history", data={"error": str(e)})
            history_store = None
        _tutor_pipeline = TutorPipeline(gateway=AIGateway(), history_store=history_store)
        logger.success("Tutor pipeline initialized", {
            "primary_model": config.AI_PRIMARY_MODEL,
            "fallback_model": config.AI_FALLBACK_MODEL,
        })
    return _tutor_pipeline


# Initialize FastAPI app
app = FastAPI(
    title="Hinglish Study Buddy API",
    description="Auth, dashboards and AI study buddy chat for schools and students",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=config.CORS_ALLOWED_HEADERS,
)

# ==================== Pydantic Models ====================


class AuthRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = None
    user_type: Optional[str] = Field(default=None, alias="userType")
    identifier: Optional[str] = None
    password: Optional[str] = None
    school_data: Optional[Dict[str, Any]] = Field(default=None, alias="schoolData")
    admin_credentials: Optional[Dict[str, Any]] = Field(default=None, alias="adminCredentials")


class StudentsRequest(BaseModel):
    action: Optional[str] = None
    user_type: Optional[str] = None
    school_id: Optional[str] = None
    session_token: Optional[str] = None


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "assistant"]
    content: Optional[str] = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    student_id: Optional[str] = Field(default=None, alias="studentId")
    analyze_session: bool = Field(default=False, alias="analyzeSession")
    current_topic: Optional[str] = Field(default=None, alias="currentTopic")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


# ==================== Error handling ====================

CHAT_PATH = "/functions/study-chat"


def error_response(error: StudyBuddyError, extra: Optional[Dict[str, Any]] = None) -> JSONResponse:
    body = error.to_dict()
    if extra:
        body.update(extra)
    return JSONResponse(status_code=error.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are a plain 400, never FastAPI's 422 detail dump."""
    logger.warning("Rejected malformed request", data={"path": request.url.path, "errors": len(exc.errors())})
    body = {"error": "Invalid request"}
    if request.url.path == CHAT_PATH:
        body["response"] = FALLBACK_REPLY
    return JSONResponse(status_code=400, content=body)


# ==================== API Endpoints ====================


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "Hinglish Study Buddy API", "version": "1.0.0"}


@app.options("/functions/{function_name}")
async def preflight(function_name: str):
    """Empty 200 for OPTIONS; CORS headers are added by the middleware."""
    return Response(status_code=200)


@app.post("/functions/secure-auth")
async def secure_auth(body: AuthRequest, request: Request):
    """Login and admin-only school management, dispatched on `action`."""
    start_time = time.time()
    client_ip = get_client_ip(request)
    logger.request("POST", "/functions/secure-auth", client_ip=client_ip, data={
        "action": body.action,
        "user_type": body.user_type,
    })

    try:
        gate = get_auth_gate()
        result = await gate.handle(
            body.action,
            client_ip,
            user_type=body.user_type,
            identifier=body.identifier,
            password=body.password,
            school_data=body.school_data,
            admin_credentials=body.admin_credentials,
        )
    except StudyBuddyError as e:
        logger.response(e.status_code, "/functions/secure-auth", duration=time.time() - start_time,
                        data={"action": body.action, "error": e.message})
        return error_response(e)
    except Exception as e:
        logger.error("Auth error", error=e, data={"action": body.action})
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    logger.response(200, "/functions/secure-auth", duration=time.time() - start_time, data={"action": body.action})
    return result


@app.post("/functions/get-students")
async def get_students(body: StudentsRequest, request: Request, authorization: Optional[str] = Header(None)):
    """Students (with recent sessions) for the school or admin dashboard."""
    start_time = time.time()
    logger.request("POST", "/functions/get-students", client_ip=get_client_ip(request), data={
        "user_type": body.user_type,
    })

    session_token = body.session_token or get_bearer_token(authorization)

    try:
        directory = get_student_directory()
        result = await directory.fetch(body.user_type, session_token, school_id=body.school_id)
    except StudyBuddyError as e:
        logger.response(e.status_code, "/functions/get-students", duration=time.time() - start_time,
                        data={"error": e.message})
        return error_response(e)
    except Exception as e:
        logger.error("Get students error", error=e)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    logger.response(200, "/functions/get-students", duration=time.time() - start_time,
                    data={"students": len(result.get("students", []))})
    return result


@app.post(CHAT_PATH)
async def study_chat(body: ChatRequest, request: Request):
    """
    One study buddy turn.

    Error bodies always carry a Hinglish `response` for the student next to
    the machine-readable `error`.
    """
    start_time = time.time()
    logger.request("POST", CHAT_PATH, client_ip=get_client_ip(request), data={
        "messages": len(body.messages),
        "analyze": body.analyze_session,
        "topic": body.current_topic,
    })

    transcript = [
        TranscriptEntry(role=m.role, content=m.content or "", image_url=m.image_url)
        for m in body.messages
    ]

    try:
        pipeline = get_tutor_pipeline()
        reply = await pipeline.handle(
            transcript,
            student_id=body.student_id,
            current_topic=body.current_topic,
            analyze=body.analyze_session,
            session_id=body.session_id,
        )
    except StudyBuddyError as e:
        logger.response(e.status_code, CHAT_PATH, duration=time.time() - start_time, data={"error": e.message})
        return error_response(e, {"response": fallback_reply_for(e)})
    except Exception as e:
        logger.error("Study chat error", error=e)
        return JSONResponse(status_code=500, content={"error": "An error occurred", "response": FALLBACK_REPLY})

    logger.response(200, CHAT_PATH, duration=time.time() - start_time, data={
        "response_length": len(reply.response),
        "analysis": reply.session_analysis is not None,
    })
    return reply.to_response()


if __name__ == "__main__":
    import uvicorn

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("SERVER SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    logger.section("SERVER STARTUP", {"host": "0.0.0.0", "port": 8000, "log_level": config.LOG_LEVEL})
    uvicorn.run(app, host="0.0.0.0", port=8000)
