import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# HubSpot private app configuration
HS_PRIVATE_APP_TOKEN = os.getenv("HS_PRIVATE_APP_TOKEN")
HUBSPOT_BASE_URL = os.getenv("HUBSPOT_BASE_URL", "https://api.hubapi.com")

# Rate-limit retry policy (429 only): total attempts and first backoff delay in seconds
HUBSPOT_MAX_RETRIES = int(os.getenv("HUBSPOT_MAX_RETRIES", "3"))
HUBSPOT_RETRY_DELAY = float(os.getenv("HUBSPOT_RETRY_DELAY", "1.0"))
HUBSPOT_TIMEOUT = float(os.getenv("HUBSPOT_TIMEOUT", "30.0"))

# Webhook signature secret (HubSpot app client secret)
HUBSPOT_WEBHOOK_SECRET = os.getenv("HUBSPOT_WEBHOOK_SECRET")
# Signature checks are enforced in production only unless explicitly toggled
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
WEBHOOK_SIGNATURE_REQUIRED = (
    os.getenv("WEBHOOK_SIGNATURE_REQUIRED", "true" if ENVIRONMENT == "production" else "false")
    .lower()
    == "true"
)

# Available exam listing cache TTL (5 minutes)
EXAM_LIST_CACHE_TTL = int(os.getenv("EXAM_LIST_CACHE_TTL", "300"))

# Default location shown on notes and booking details when HubSpot has none
DEFAULT_EXAM_LOCATION = os.getenv("DEFAULT_EXAM_LOCATION", "Mississauga")
