# sitegen/utils/config.py
import os
from dotenv import load_dotenv

load_dotenv()

# ----------------------------
# Model
# ----------------------------
GEMINI_API_KEY = os.environ.get("GOOGLE_API_KEY_GEMINI") or os.environ.get("GEMINI_API_KEY")
AI_MODEL = os.environ.get("AI_MODEL", "gemini-2.5-flash")
AI_MAX_OUTPUT_TOKENS = int(os.environ.get("AI_MAX_OUTPUT_TOKENS", 32768))
AI_TIMEOUT = int(os.environ.get("AI_TIMEOUT", 180))  # seconds per model call
AI_DETECT_THEME = os.environ.get("AI_DETECT_THEME", "1").lower() not in ("0", "false", "no")

AGENT_TEMPERATURES = {
    "codegen": float(os.environ.get("AI_CODEGEN_TEMPERATURE", 0.7)),
    "repair": float(os.environ.get("AI_REPAIR_TEMPERATURE", 0.7)),
    "theme": 0.1,
}

# ----------------------------
# Workflow
# ----------------------------
STEP_RETRIES = int(os.environ.get("AI_STEP_RETRIES", 3))
STEP_BACKOFF_S = float(os.environ.get("AI_STEP_BACKOFF_S", 1.0))

LINT_REPAIR_ATTEMPTS = int(os.environ.get("AI_LINT_REPAIR_ATTEMPTS", 2))
SYNTAX_REPAIR_ATTEMPTS = int(os.environ.get("AI_SYNTAX_REPAIR_ATTEMPTS", 2))
JSON_REPAIR_ATTEMPTS = int(os.environ.get("AI_JSON_REPAIR_ATTEMPTS", 2))
STRUCTURE_REPAIR_ATTEMPTS = int(os.environ.get("AI_STRUCTURE_REPAIR_ATTEMPTS", 2))
UX_REPAIR_ATTEMPTS = int(os.environ.get("AI_UX_REPAIR_ATTEMPTS", 3))

# ----------------------------
# Validation
# ----------------------------
LINT_BATCH_SIZE = int(os.environ.get("AI_LINT_BATCH_SIZE", 5))
REPAIR_ISSUE_LIMIT = int(os.environ.get("AI_REPAIR_ISSUE_LIMIT", 40))
VALIDATOR_TIMEOUT = int(os.environ.get("AI_VALIDATOR_TIMEOUT", 60))  # seconds per lint run
ESLINT_CONFIG_PATH = os.environ.get("ESLINT_CONFIG_PATH") or None

MAX_FILE_COUNT = 300
MAX_FILE_CONTENT_LENGTH = 300_000

# ----------------------------
# Status registry
# ----------------------------
COMPLETION_TTL_S = int(os.environ.get("STATUS_COMPLETION_TTL_S", 30 * 60))
PROGRESS_TTL_S = int(os.environ.get("STATUS_PROGRESS_TTL_S", 60 * 60))
STATUS_API_URL = os.environ.get("STATUS_API_URL") or None

# ----------------------------
# Logging
# ----------------------------
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.environ.get("AI_BACKEND_LOG_DIR", "./ai_backend_logs")

# ----------------------------
# Server
# ----------------------------
SERVER_HOST = os.environ.get("HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("PORT", 8000))
