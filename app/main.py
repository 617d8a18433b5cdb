"""
HTTP API for Finance Tracker

This is the surface the web client talks to. Every endpoint takes
"Authorization: Bearer <token>" from the identity provider.

DESIGN PRINCIPLES:
1. Routes are thin - all decisions happen in the flows
2. One place maps outcome classes to HTTP status codes
3. Error bodies carry a user-facing message only, never internals

Run with:
    uvicorn app.main:app --reload
"""

import asyncio
import contextlib
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from finance_tracker import __version__
from finance_tracker.config import get_settings, validate_all_settings
from finance_tracker.models.outcome import FlowResult, OutcomeStatus
from finance_tracker.orchestrator import AppComponents, create_app_components


STATUS_CODES = {
    OutcomeStatus.UNAUTHENTICATED: 401,
    OutcomeStatus.VALIDATION_FAILED: 400,
    OutcomeStatus.INVALID_REFERENCE: 400,
    OutcomeStatus.SETUP_REQUIRED: 400,
    OutcomeStatus.FORBIDDEN: 403,
    OutcomeStatus.NOT_FOUND: 404,
    OutcomeStatus.RATE_LIMITED: 429,
    OutcomeStatus.EXTRACTION_FAILED: 502,
    OutcomeStatus.UPSTREAM_FAILURE: 502,
    OutcomeStatus.INTERNAL: 500,
}

bearer = HTTPBearer(auto_error=False)


def bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[str]:
    return credentials.credentials if credentials else None


async def read_json(request: Request) -> Any:
    """Request body as JSON, or None when it is missing or malformed."""
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def error_response(result: FlowResult) -> JSONResponse:
    body: dict[str, Any] = {
        "success": False,
        "status": result.status.value,
        "error": result.message,
    }
    if result.errors:
        body["details"] = [{"field": e.field, "message": e.message} for e in result.errors]
    if result.field:
        body["field"] = result.field

    headers = {}
    if result.reset_at:
        body["reset_at"] = result.reset_at.isoformat()

    if result.status == OutcomeStatus.UNAUTHENTICATED:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(body, status_code=STATUS_CODES[result.status], headers=headers)


def to_response(result: FlowResult) -> JSONResponse:
    if not result.ok:
        return error_response(result)
    return JSONResponse(
        {"success": True, "data": jsonable_encoder(result.data)},
        status_code=201 if result.created else 200,
    )


def create_api(components: Optional[AppComponents] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        components: Pre-built flows (tests pass in-memory ones).
                    Defaults to create_app_components().
    """
    app_settings = get_settings().app
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if app_settings.debug_mode else logging.INFO,
    )

    components = components or create_app_components()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(
            components.rate_limiter.run_sweeper(app_settings.rate_limit_sweep_interval_seconds)
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="Finance Tracker API", version=__version__, lifespan=lifespan)
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health():
        configured = validate_all_settings()
        return {
            "status": "ok",
            "version": __version__,
            "storage": components.storage_backend,
            "configured": {
                name: configured[name] for name in ("gemini", "google_sheets", "auth", "app")
            },
        }

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @app.post("/api/transactions")
    async def create_transaction(request: Request, token: Optional[str] = Depends(bearer_token)):
        payload = await read_json(request)
        return to_response(await components.intake.create_transaction(token, payload))

    @app.get("/api/transactions")
    async def list_transactions(
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        transaction_type: Optional[str] = Query(None, alias="type"),
        token: Optional[str] = Depends(bearer_token),
    ):
        result = await components.intake.list_transactions(
            token, date_from=date_from, date_to=date_to, transaction_type=transaction_type
        )
        return to_response(result)

    @app.put("/api/transactions/{transaction_id}")
    async def update_transaction(
        transaction_id: str,
        request: Request,
        token: Optional[str] = Depends(bearer_token),
    ):
        payload = await read_json(request)
        return to_response(
            await components.intake.update_transaction(token, transaction_id, payload)
        )

    @app.delete("/api/transactions/{transaction_id}")
    async def delete_transaction(transaction_id: str, token: Optional[str] = Depends(bearer_token)):
        return to_response(await components.intake.delete_transaction(token, transaction_id))

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    @app.get("/api/categories")
    async def list_categories(token: Optional[str] = Depends(bearer_token)):
        return to_response(await components.intake.list_categories(token))

    @app.post("/api/categories")
    async def create_category(request: Request, token: Optional[str] = Depends(bearer_token)):
        payload = await read_json(request)
        return to_response(await components.intake.create_category(token, payload))

    @app.get("/api/payment-sources")
    async def list_payment_sources(token: Optional[str] = Depends(bearer_token)):
        return to_response(await components.intake.list_payment_sources(token))

    @app.post("/api/payment-sources")
    async def create_payment_source(request: Request, token: Optional[str] = Depends(bearer_token)):
        payload = await read_json(request)
        return to_response(await components.intake.create_payment_source(token, payload))

    # -------------------------------------------------------------------------
    # AI
    # -------------------------------------------------------------------------

    @app.post("/api/receipt")
    async def scan_receipt(request: Request, token: Optional[str] = Depends(bearer_token)):
        payload = await read_json(request)
        body = payload if isinstance(payload, dict) else {}
        result = await components.receipts.scan(
            token,
            body.get("image"),
            save=body.get("save") is True,
            transaction_type=body.get("type", "expense"),
        )
        return to_response(result)

    @app.post("/api/ai-chat")
    async def ai_chat(request: Request, token: Optional[str] = Depends(bearer_token)):
        payload = await read_json(request)
        body = payload if isinstance(payload, dict) else {}
        result = await components.chat.chat(token, body.get("messages"))
        if not result.ok:
            return error_response(result)
        return {"success": True, "content": result.data["content"]}

    return app


app = create_api()
