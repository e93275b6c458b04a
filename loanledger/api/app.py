"""FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from loanledger.api.errors import liability_error_handler
from loanledger.api.routes import accounts, amortization, liabilities, schedule, settlement
from loanledger.config import settings
from loanledger.exceptions import LiabilityError

logging.basicConfig(level=settings.log_level)

app = FastAPI(
    title="LoanLedger",
    description="Liability amortization, schedule recalculation and close-out",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(LiabilityError, liability_error_handler)

app.include_router(liabilities.router)
app.include_router(schedule.router)
app.include_router(settlement.router)
app.include_router(accounts.router)
app.include_router(amortization.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/v1/client-settings")
async def client_settings():
    """Hints for interactive clients. Impact previews are debounced client-side."""
    return {
        "impact_debounce_ms": settings.impact_debounce_ms,
        "max_schedule_periods": settings.max_schedule_periods,
    }
