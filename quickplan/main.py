"""
FastAPI application entry point.

Serves the Quick Plan conversation endpoints. Set QUICKPLAN_LOG_JSON=1 to
emit the package's logs as JSON lines instead of the plain text format.
"""

import logging
import os
import sys

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quickplan.graph import orchestrator_api
from quickplan.shared.logging import setup_logging


load_dotenv()

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-35s | %(message)s"

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)

if os.environ.get("QUICKPLAN_LOG_JSON"):
    setup_logging(log_file=os.environ.get("QUICKPLAN_LOG_FILE"))

# Per-request client logs drown out the gateway's own summaries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


app = FastAPI(
    title="Quick Plan",
    description="Conversational trip planning with staged enrichment",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("QUICKPLAN_CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orchestrator_api.router)


@app.get("/")
async def root():
    return {
        "name": "Quick Plan",
        "version": "0.1.0",
        "endpoints": {
            "sessions": "/api/quick-plan/sessions",
            "health": "/health",
        },
        "enrichment": ["discover-areas", "hotels", "restaurants", "experiences", "generate-itinerary"],
    }


@app.get("/health")
async def health():
    return {"status": "healthy", "active_sessions": len(orchestrator_api._sessions)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
