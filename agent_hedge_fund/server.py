"""
HTTP surface: the x402-protected model actions plus the payment endpoints.

Every payment denial is a 402 with {error, requiresPayment: true}. The gate
calls the ledger synchronously, so evaluations run in the threadpool.
"""

import json
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from agent_hedge_fund import __version__
from agent_hedge_fund.agent import YieldAgent
from agent_hedge_fund.config import AppConfig
from agent_hedge_fund.payments.fees import (
    COMPETITION_ENTRY_ROUTE,
    INVEST_ROUTE,
    VIEW_DETAILS_ROUTE,
)
from agent_hedge_fund.payments.gate import AuthorizationResult, PaymentGate
from agent_hedge_fund.payments.proof import coerce_wei

logger = logging.getLogger(__name__)

VERIFY_FIELDS = ("address", "amount", "proof", "route")


async def _read_json(request: Request) -> Optional[Any]:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def create_app(config: AppConfig, gate: PaymentGate,
               agent: Optional[YieldAgent] = None) -> FastAPI:
    """Build the API around an already-constructed gate (and optional agent)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        agent_thread = None
        if agent is not None:
            agent_thread = threading.Thread(
                target=agent.start, kwargs={"install_signals": False},
                name="yield-agent-scheduler", daemon=True,
            )
            agent_thread.start()
            logger.info("Yield agent scheduler started for model #%s", agent.model_id)
        yield
        if agent_thread is not None:
            agent.stop()
            agent_thread.join()
            logger.info("Yield agent scheduler stopped")

    app = FastAPI(title="Agent Hedge Fund API", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.gate = gate

    def payment_required(route_key: str, result: AuthorizationResult) -> JSONResponse:
        content = {"error": result.reason or "Payment required", "requiresPayment": True}
        descriptor = gate.fees.lookup(route_key)
        if descriptor is not None:
            details = descriptor.to_payload()
            details["payTo"] = config.gateway.fee_collector or None
            content["paymentDetails"] = details
        return JSONResponse(status_code=402, content=content)

    async def authorize(request: Request, route_key: str, body: Optional[Any]) -> AuthorizationResult:
        return await run_in_threadpool(gate.authorize, body, route_key, request.headers)

    @app.get("/")
    async def root():
        return {
            "status": "operational",
            "service": "agent-hedge-fund",
            "version": __version__,
            "feeCollectorConfigured": bool(config.gateway.fee_collector),
            "agentEnabled": agent is not None,
        }

    @app.get("/models/{model_id}/details")
    async def model_details(model_id: str, request: Request):
        result = await authorize(request, VIEW_DETAILS_ROUTE, None)
        if not result.authorized:
            return payment_required(VIEW_DETAILS_ROUTE, result)
        return {
            "modelId": _int_or_none(model_id),
            "details": "Full model details unlocked after payment",
        }

    @app.post("/models/{model_id}/invest")
    async def invest(model_id: str, request: Request):
        body = await _read_json(request)
        result = await authorize(request, INVEST_ROUTE, body)
        if not result.authorized:
            return payment_required(INVEST_ROUTE, result)
        return {
            "success": True,
            "modelId": _int_or_none(model_id),
            "invested": (body or {}).get("amount"),
            "message": "Investment processed successfully with x402 micropayment",
        }

    @app.post("/competitions/{competition_id}/enter")
    async def enter_competition(competition_id: str, request: Request):
        body = await _read_json(request)
        result = await authorize(request, COMPETITION_ENTRY_ROUTE, body)
        if not result.authorized:
            return payment_required(COMPETITION_ENTRY_ROUTE, result)
        return {
            "success": True,
            "competitionId": _int_or_none(competition_id),
            "modelId": _int_or_none((body or {}).get("modelId")),
            "message": "Competition entry processed successfully with x402 micropayment",
        }

    @app.post("/payment/verify")
    async def verify_payment(request: Request):
        body = await _read_json(request)
        if not isinstance(body, dict):
            body = {}
        missing = [name for name in VERIFY_FIELDS if body.get(name) in (None, "")]
        if missing:
            return JSONResponse(
                status_code=400,
                content={"error": f"Missing required fields: {', '.join(VERIFY_FIELDS)}"},
            )
        try:
            amount = coerce_wei(body["amount"])
        except ValueError as e:
            return JSONResponse(status_code=400, content={"error": f"Invalid amount: {e}"})

        try:
            valid = await run_in_threadpool(
                gate.verify, str(body["address"]), amount, str(body["proof"]), str(body["route"]),
            )
        except Exception as e:
            logger.exception("Payment verification failed unexpectedly")
            return JSONResponse(status_code=500,
                                content={"error": str(e) or "Payment verification failed"})

        if not valid:
            return JSONResponse(status_code=402, content={"error": "Invalid payment proof"})
        return {"verified": True, "message": "Payment verified successfully"}

    @app.get("/payment/amounts")
    async def payment_amounts():
        return JSONResponse(gate.fees.amounts_payload())

    return app
