from __future__ import annotations

import asyncio
import random
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from config import Configuration
from errors import (
    ConfigurationError,
    EnrichmentFailed,
    NotFound,
    ProviderError,
    QuotaExhausted,
    SignatureInvalid,
    StoreError,
    TransportFailure,
)
from models import NO_CUISINE_FILTER, Location, PickRequest
from services.candidate_finder import CandidateFinder
from services.details import DetailEnricher
from services.orchestrator import (
    NO_RESULTS_TITLE,
    OUT_OF_SPINS_TITLE,
    DinnerPicker,
    NoCandidates,
)
from services.quota import QuotaGate
from services.quota_store import QuotaStore
from services.state import build_quota_store
from services.subscription import SubscriptionManager


class SpinRequest(BaseModel):
    userId: Optional[str] = Field(None, description="Opaque user identity")


class PickBody(BaseModel):
    userId: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    cuisine: Optional[str] = Field(NO_CUISINE_FILTER, description="Cuisine keyword or 'Anything'")
    radiusMiles: float = Field(5.0, gt=0, description="Search radius in miles")


class DetailsBody(BaseModel):
    restaurantName: str = Field(..., min_length=1)


class CheckoutBody(BaseModel):
    userId: str = Field(..., min_length=1)


class RestaurantPayload(BaseModel):
    name: str
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    place_id: Optional[str] = None


class PickResponse(BaseModel):
    restaurant: RestaurantPayload
    spinsRemaining: int
    isPremium: bool = False


class DetailsResponse(BaseModel):
    address: str
    cuisineType: str
    customerRating: str
    recentReview: str


def _require_user_id(body: SpinRequest) -> str:
    user_id = (body.userId or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    return user_id


def create_app(
    cfg: Optional[Configuration] = None,
    *,
    store: Optional[QuotaStore] = None,
    finder: Optional[CandidateFinder] = None,
    enricher: Optional[DetailEnricher] = None,
    subscriptions: Optional[SubscriptionManager] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    cfg = cfg or Configuration.from_env()
    store = store if store is not None else build_quota_store(cfg)
    gate = QuotaGate(store, free_spins=cfg.free_spins)
    finder = finder or CandidateFinder(cfg)
    enricher = enricher or DetailEnricher(cfg)
    subscriptions = subscriptions or SubscriptionManager(cfg, store)
    picker = DinnerPicker(gate, finder, enricher, rng=rng)

    app = FastAPI(title="Dinner Picker")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.cfg = cfg
    app.state.store = store
    app.state.gate = gate
    app.state.picker = picker
    app.state.subscriptions = subscriptions

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": "Invalid request body", "errors": jsonable_encoder(exc.errors())})

    @app.get("/healthz")
    def healthz() -> dict:
        logger.info("cfg: {}", cfg.log_summary())
        return {"status": "ok"}

    @app.get("/health/store")
    def health_store() -> dict:
        try:
            ok = store.ping()
            detail = None
        except StoreError as exc:
            ok = False
            detail = str(exc)
        return {"ok": ok, "backend": cfg.quota_backend, "detail": detail}

    @app.post("/spins/check")
    def spins_check(body: SpinRequest) -> dict:
        user_id = _require_user_id(body)
        try:
            decision = gate.can_use(user_id)
        except StoreError as exc:
            logger.exception("spin check failed: {}", exc)
            raise HTTPException(status_code=500, detail=f"Failed to check spins: {exc}")
        return {"canSpin": decision.allowed, "spinsRemaining": decision.remaining}

    @app.post("/spins/use")
    def spins_use(body: SpinRequest) -> dict:
        user_id = _require_user_id(body)
        try:
            result = gate.consume(user_id)
        except NotFound:
            raise HTTPException(status_code=404, detail="User not found")
        except QuotaExhausted:
            raise HTTPException(status_code=403, detail="No spins remaining")
        except StoreError as exc:
            logger.exception("spin use failed: {}", exc)
            raise HTTPException(status_code=500, detail=f"Failed to use spin: {exc}")
        return {"success": True, "spinsRemaining": result.remaining}

    @app.post("/pick", response_model=PickResponse)
    def pick_restaurant(body: PickBody) -> PickResponse:
        req = PickRequest(
            user_id=body.userId,
            location=Location(lat=body.latitude, lon=body.longitude),
            radius_miles=body.radiusMiles,
            cuisine=body.cuisine,
        )
        try:
            result = picker.pick(req)
        except QuotaExhausted as exc:
            raise HTTPException(status_code=403, detail={"title": OUT_OF_SPINS_TITLE, "description": str(exc)})
        except NoCandidates as exc:
            raise HTTPException(status_code=404, detail={"title": NO_RESULTS_TITLE, "description": str(exc)})
        except ConfigurationError as exc:
            logger.error("pick misconfigured: {}", exc)
            raise HTTPException(status_code=500, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.exception("pick failed: {}", exc)
            raise HTTPException(status_code=500, detail="internal error")

        r = result.restaurant
        return PickResponse(
            restaurant=RestaurantPayload(
                name=r.name,
                rating=r.rating,
                user_ratings_total=r.rating_count,
                place_id=r.place_id,
            ),
            spinsRemaining=result.spins_remaining,
            isPremium=result.is_premium,
        )

    @app.post("/details", response_model=DetailsResponse)
    def restaurant_details(body: DetailsBody) -> DetailsResponse:
        try:
            record = picker.details(body.restaurantName)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except ConfigurationError as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        except (EnrichmentFailed, ProviderError, TransportFailure) as exc:
            logger.warning("details unavailable for {}: {}", body.restaurantName, exc)
            raise HTTPException(status_code=502, detail="Failed to get restaurant details.")
        return DetailsResponse(**record.model_dump())

    @app.post("/checkout")
    def create_checkout(body: CheckoutBody) -> dict:
        try:
            session = subscriptions.create_checkout_session(body.userId)
        except ConfigurationError as exc:
            logger.error("checkout misconfigured: {}", exc)
            raise HTTPException(status_code=500, detail=str(exc))
        except ProviderError as exc:
            raise HTTPException(status_code=502, detail=str(exc))
        return {"sessionId": session.session_id, "url": session.url}

    @app.post("/webhook")
    async def stripe_webhook(request: Request) -> dict:
        payload = await request.body()
        signature = request.headers.get("stripe-signature")
        try:
            event = subscriptions.verify_event(payload, signature)
        except SignatureInvalid as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except ConfigurationError as exc:
            logger.error("webhook misconfigured: {}", exc)
            raise HTTPException(status_code=500, detail="Webhook secret not configured")

        try:
            await asyncio.to_thread(subscriptions.handle_event, event)
        except Exception as exc:
            logger.exception("Error processing webhook: {}", exc)
            raise HTTPException(status_code=500, detail="Webhook processing failed")
        return {"received": True}

    return app


load_dotenv()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
