import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


# Input / output files
CONTACTS_FILE = os.getenv("CONTACTS_FILE", "contacts.json")
LEDGER_DIR = os.getenv("LEDGER_DIR", "ledgers")
SUMMARY_FILE = os.getenv("SUMMARY_FILE", os.path.join(LEDGER_DIR, "summary.json"))
AUDIT_LOG_FILE = os.getenv("AUDIT_LOG_FILE", "messages.txt")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "campaign.log")

# Pacing between recipients (milliseconds)
DELAY_MIN_MS = int(os.getenv("DELAY_MIN_MS", "20000"))
DELAY_MAX_MS = int(os.getenv("DELAY_MAX_MS", "60000"))

# Retry policy for a single recipient
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_DELAY_SECONDS = float(os.getenv("RETRY_DELAY_SECONDS", "5"))

# false = a recipient recorded as failed is never contacted again (sticky)
# true  = failed recipients are re-included on the next restart
RETRY_FAILED_ON_RESTART = _env_bool("RETRY_FAILED_ON_RESTART")

# Run id = today's date in this timezone
TARGET_TIMEZONE = os.getenv("TARGET_TIMEZONE", "UTC")

# Completion report goes to this recipient (empty = no report message)
OPERATOR_ID = os.getenv("OPERATOR_ID", "")

# Message content
MESSAGE_TEXT = os.getenv("MESSAGE_TEXT", "")
MESSAGE_LINK = os.getenv("MESSAGE_LINK", "")
PHRASES_FILE = os.getenv("PHRASES_FILE", "")
IMAGE_PATH = os.getenv("IMAGE_PATH", "images.webp")

# Messaging gateway (WAHA-compatible HTTP API)
GATEWAY_URL = os.getenv("GATEWAY_URL", "http://localhost:3000")
GATEWAY_API_KEY = os.getenv("GATEWAY_API_KEY", "")
GATEWAY_SESSION = os.getenv("GATEWAY_SESSION", "default")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "60"))
PAIRING_TIMEOUT_SECONDS = float(os.getenv("PAIRING_TIMEOUT_SECONDS", "600"))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "3"))
QR_PATH = os.getenv("QR_PATH", "qr.png")

# Dry run: resolve and "send" in memory only
DRY_RUN = _env_bool("DRY_RUN")
