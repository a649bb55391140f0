# main.py
# ──────────────────────────────────────────────────────────────────────────────
# Chatflow FastAPI backend:
# - GET  /start         first question of the scripted dialogue
# - POST /next          advance with {question_id, option_id}
# - POST /save-contact  persist {name, phone} once the dialogue shows the form
# - GET  /contacts      stored contacts, newest first
# Production notes:
#   • Run with: uvicorn main:app --host 0.0.0.0 --port 3000
#   • DATABASE_URL selects the relational contact store; without it contacts
#     are kept in CONTACTS_PATH (JSON)
#   • FRONTEND_URL restricts CORS to the web client's origin
# ──────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import logging

from dotenv import load_dotenv

from chatflow.app import create_app
from chatflow.config import get_settings

load_dotenv()

settings = get_settings()

LOG_LEVEL = getattr(logging, settings.log_level.upper(), logging.INFO)
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("chatflow.api")

app = create_app(settings)

# ──────────────────────────────────────────────────────────────────────────────
# Local dev entrypoint
# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    logger.info("Server listening on port %s", settings.port)
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
