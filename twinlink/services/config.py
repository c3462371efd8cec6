"""Runtime configuration read from the environment.

Values are loaded from the project-root `.env` (if present) on import.
API keys are looked up at call time so they can be rotated without a
restart.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PATH = PROJECT_ROOT / ".env"

load_dotenv(ENV_PATH)

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'local.db'}")
STORAGE_ROOT = Path(os.getenv("STORAGE_ROOT", str(PROJECT_ROOT / "storage")))
STORAGE_BUCKET = "character-images"
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AI_GATEWAY_URL = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions")
GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:streamGenerateContent"

GATEWAY_CHAT_MODEL = os.getenv("GATEWAY_CHAT_MODEL", "google/gemini-3-flash-preview")
GATEWAY_IMAGE_MODEL = os.getenv("GATEWAY_IMAGE_MODEL", "google/gemini-2.5-flash-image-preview")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-70b-versatile")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "1024"))


def gateway_api_key() -> Optional[str]:
    return os.getenv("AI_GATEWAY_API_KEY") or None


def public_url(path: str) -> str:
    """Prefix an absolute path with the public base URL, if one is set."""
    return f"{PUBLIC_BASE_URL}{path}"
