"""Signal ingestion HTTP endpoint."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.errors import SignalValidationError
from confluence_trader.models import Signal, SignalDirection
from confluence_trader.runner.scheduler import AnalysisScheduler
from confluence_trader.state.signal_store import SignalStore
from confluence_trader.state.store import AccountStore
from confluence_trader.utils.time import utc_now_s

logger = logging.getLogger(__name__)


class WebhookSignal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timeframe: str
    signal: SignalDirection
    ticker: Optional[str] = None
    details: Optional[Any] = None

    @field_validator("timeframe")
    @classmethod
    def _known_timeframe(cls, value: str, info: ValidationInfo) -> str:
        value = value.strip()
        timeframes = (info.context or {}).get("timeframes")
        if not value:
            raise ValueError("timeframe is required")
        if timeframes and value not in timeframes:
            raise ValueError(f"unsupported timeframe {value}")
        return value


def parse_signal_payload(payload: Any, settings: Settings, now: int) -> Signal:
    if not isinstance(payload, dict):
        raise SignalValidationError("Invalid payload")
    try:
        body = WebhookSignal.model_validate(
            payload, context={"timeframes": settings.signal_timeframes}
        )
    except ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
        raise SignalValidationError(f"Invalid payload: {fields or exc}") from exc
    return Signal.create(
        timeframe=body.timeframe,
        direction=body.signal,
        ticker=body.ticker,
        timestamp=now,
        details=body.details,
        retention_s=settings.signal_retention_days * 24 * 60 * 60,
    )


def create_app(
    store: Optional[AccountStore] = None,
    scheduler_factory: Optional[Callable[[], Any]] = None,
    settings: Optional[Settings] = None,
    clock: Callable[[], int] = utc_now_s,
) -> FastAPI:
    s = settings or default_settings
    store = store or AccountStore(s.database_url)
    signal_store = SignalStore(store, settings=s)

    if scheduler_factory is None:
        # One scheduler per app so the simulated venue keeps its book between triggers.
        built: Dict[str, AnalysisScheduler] = {}

        def scheduler_factory() -> Any:
            if "scheduler" not in built:
                built["scheduler"] = AnalysisScheduler.from_settings(s, store=store)
            return built["scheduler"]

    app = FastAPI(title="Confluence Trader Webhook")

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.error("Error in webhook handler: %s", exc)
        return JSONResponse({"error": "Invalid payload"}, status_code=400)

    def _run_analysis() -> None:
        try:
            summary = scheduler_factory().run()
        except Exception:
            logger.exception("Triggered analysis failed")
            return
        logger.info("Triggered analysis %s finished in mode %s", summary.run_id, summary.mode.value)

    @app.post("/webhook")
    def webhook(background_tasks: BackgroundTasks, payload: Any = Body(None)) -> JSONResponse:
        logger.info("Webhook received")
        now = clock()
        try:
            signal = parse_signal_payload(payload, s, now)
        except SignalValidationError as exc:
            logger.error("Error in webhook handler: %s", exc)
            return JSONResponse({"error": str(exc)}, status_code=400)

        triggered = signal_store.add_signal(signal, now=now)
        if triggered:
            background_tasks.add_task(_run_analysis)
            logger.info("Analysis triggered by %s signal", signal.timeframe)
        return JSONResponse({"message": "Signal received", "id": signal.signal_id})

    @app.get("/health")
    def health() -> JSONResponse:
        state = store.load()
        lock = state.analysis_lock
        return JSONResponse(
            {
                "status": "ok",
                "signals": len(state.signals),
                "positions": len(state.positions),
                "price_samples": len(state.price_history),
                "last_trigger": state.last_trigger,
                "last_analysis": state.last_analysis,
                "lock_owner": lock.owner if lock and not lock.is_expired(clock()) else None,
                "trading_enabled": s.trading_enabled,
            }
        )

    return app
