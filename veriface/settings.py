import os

from dotenv import load_dotenv

load_dotenv()


# ====== Server ======
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# ====== Gemini ======
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", "")
GEMINI_MATCH_MODEL = os.getenv("GEMINI_MATCH_MODEL", "gemini-1.5-flash")
# Needs a model that can answer with IMAGE parts
GEMINI_ENHANCE_MODEL = os.getenv("GEMINI_ENHANCE_MODEL", "gemini-2.0-flash-exp")
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS")) if os.getenv("GEMINI_TIMEOUT_SECONDS") else None


# ====== Selfie hand-off ======
# "peek": latest selfie stays until overwritten; "consume": cleared on first read
SELFIE_POLL_MODE = os.getenv("SELFIE_POLL_MODE", "peek").lower()
POLL_MODES = {"peek", "consume"}

# Empty means intake is open (prototype behaviour)
INTAKE_API_KEY = os.getenv("INTAKE_API_KEY", "")


# Upload limits (form path only)
MAX_SELFIE_MB = int(os.getenv("MAX_SELFIE_MB", "5"))


# ====== Kiosk ======
KIOSK_SERVER_URL = os.getenv("KIOSK_SERVER_URL", "http://localhost:8000")
KIOSK_POLL_INTERVAL_SECONDS = float(os.getenv("KIOSK_POLL_INTERVAL_SECONDS", "3.0"))
KIOSK_AUTO_SUBMIT_DELAY_SECONDS = float(os.getenv("KIOSK_AUTO_SUBMIT_DELAY_SECONDS", "1.5"))
KIOSK_OUTPUT_DIR = os.getenv("KIOSK_OUTPUT_DIR", "")
