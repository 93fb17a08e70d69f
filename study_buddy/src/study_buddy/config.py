"""
Study Buddy configuration

Environment variables and tuning constants for the auth gate and the tutor
pipeline. Values are read once at import time from the process environment
(and a local .env file, if present).
"""

import os
from dotenv import load_dotenv

load_dotenv()
load_dotenv('../.env')  # Also try parent directory (backend/ is the usual cwd)

# ==================== Supabase ====================

SUPABASE_URL = os.getenv("SUPABASE_URL")
# Service role key bypasses RLS - backend only
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY")

# ==================== Session tokens ====================

SESSION_TOKEN_SECRET = os.getenv("SESSION_TOKEN_SECRET")
SESSION_TOKEN_ALGORITHM = "HS256"
SESSION_TOKEN_TTL_HOURS = int(os.getenv("SESSION_TOKEN_TTL_HOURS", "12"))

# ==================== Login rate limiting ====================

LOGIN_WINDOW_SECONDS = 15 * 60
LOGIN_MAX_ATTEMPTS = 5
LOGIN_BLOCK_SECONDS = 30 * 60

# ==================== AI gateway ====================

AI_GATEWAY_API_KEY = os.getenv("AI_GATEWAY_API_KEY") or os.getenv("LOVABLE_API_KEY")
AI_GATEWAY_URL = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1")
AI_PRIMARY_MODEL = os.getenv("AI_PRIMARY_MODEL", "google/gemini-3-flash-preview")
AI_FALLBACK_MODEL = os.getenv("AI_FALLBACK_MODEL", "google/gemini-2.5-flash")
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "800"))

# ==================== Tutor pipeline ====================

CHAT_MAX_REQUESTS = int(os.getenv("CHAT_MAX_REQUESTS", "30"))
CHAT_WINDOW_SECONDS = int(os.getenv("CHAT_WINDOW_SECONDS", "60"))
TRANSCRIPT_WINDOW = 6
HISTORY_SESSION_LIMIT = 10
HISTORY_TAG_LIMIT = 5

# ==================== HTTP ====================

CORS_ALLOWED_HEADERS = [
    h.strip()
    for h in os.getenv("CORS_ALLOWED_HEADERS", "authorization, x-client-info, apikey, content-type").split(",")
    if h.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
