# bankfeed/main.py
# Role: Application entry point for the bank statement engine.
#       Initializes logging and the FastAPI app, creates database tables,
#       maps service errors to JSON responses, and registers all route modules.

"""
Main FastAPI app for bank statement ingestion and transaction categorization.

Here we only:
- configure logging
- create DB tables
- create the FastAPI app
- register the error handler
- include route modules

Run with:
    uvicorn bankfeed.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import bankfeed.models  # noqa: F401  (registers tables on Base.metadata)
from bankfeed.config import settings
from bankfeed.db import Base, engine
from bankfeed.errors import BankFeedError
from bankfeed.logging_setup import configure_logging
from bankfeed.routes_accounts import router as accounts_router
from bankfeed.routes_dashboard import router as dashboard_router
from bankfeed.routes_root import router as root_router
from bankfeed.routes_transactions import router as transactions_router
from bankfeed.routes_upload import router as upload_router

configure_logging()
logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# App & DB setup
# -------------------------------------------------------------------

# Create database tables (only if they don't exist yet).
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Bank Feeds")


@app.exception_handler(BankFeedError)
async def bankfeed_error_handler(request: Request, exc: BankFeedError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# -------------------------------------------------------------------
# Include routers
# -------------------------------------------------------------------

# Root / landing routes
app.include_router(root_router)

# Bank account maintenance
app.include_router(accounts_router)

# Transactions list, manual entry, categorization, batch undo
app.include_router(transactions_router)

# Statement upload: preview and import
app.include_router(upload_router)

# Dashboard and allocation pickers
app.include_router(dashboard_router)

logger.info("Bank feeds app started (env=%s)", settings.app_env)
