from __future__ import annotations

import asyncio
import threading
from typing import Any

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .analytics.aggregator import compute_analytics
from .config import DEFAULT_APP_CONFIG, AppConfig
from .container import Services, build_services
from .device.dependencies import (
    cookie_device_id,
    require_device_id,
    resolve_device_id,
    set_device_cookie,
)
from .dishes.models import AnalyzeResponse, DishDetailRequest, DishDetailResponse
from .models import camelize_keys
from .recommendations.engine import (
    NoDishesError,
    RateLimitedError,
    RecommendationError,
    RecommendationUnavailableError,
)
from .recommendations.models import (
    PreferenceProfile,
    PreferencesPayload,
    RecommendationRequest,
    RecommendationResponse,
)
from .vision.extractor import UnsupportedImageError


NOT_A_MENU_MESSAGE = "The image doesn't appear to be a menu. Please upload a photo of a menu."
NO_DISHES_MESSAGE = (
    "No dish names could be clearly identified in the image. Try taking a clearer photo "
    "with better lighting and make sure dish names are visible."
)
TIMEOUT_MESSAGE = (
    "Image processing took too long. This can happen with large or complex menus. "
    "Please try with a smaller section of the menu, or try again."
)
NO_MATCH_MESSAGE = "None of these dishes matched your preferences. Try scanning another menu."

_services_lock = threading.Lock()


def get_services(request: Request) -> Services:
    """Return the app's services, building them on first use."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        with _services_lock:
            services = getattr(request.app.state, "services", None)
            if services is None:
                services = build_services()
                request.app.state.services = services
    return services


def _recommendation_status(exc: RecommendationError) -> tuple[int, str]:
    if isinstance(exc, NoDishesError):
        return 400, "No dishes provided. Please scan a menu first."
    if isinstance(exc, RateLimitedError):
        return 429, "Too many requests. Please try again in a moment."
    if isinstance(exc, RecommendationUnavailableError):
        return 503, "Recommendation service temporarily unavailable."
    return 502, "Error generating recommendations"


async def _run_analysis(services: Services, data: bytes) -> AnalyzeResponse:
    extraction = await asyncio.to_thread(services.vision.extract, data)
    if not extraction.is_menu:
        return AnalyzeResponse(dishes=[], message=NOT_A_MENU_MESSAGE)
    if not extraction.dishes:
        return AnalyzeResponse(dishes=[], message=NO_DISHES_MESSAGE)

    result = await services.enricher.enrich(list(extraction.dishes))
    return AnalyzeResponse(
        dishes=result.dishes,
        message=f"Found {len(result.dishes)} dishes in your photo.",
        image_quota_exceeded=result.image_quota_exceeded,
    )


def create_app(
    services: Services | None = None,
    config: AppConfig = DEFAULT_APP_CONFIG,
) -> FastAPI:
    app = FastAPI(title="Menu Helper API", version="1.0.0")
    if services is not None:
        app.state.services = services
        config = services.config

    @app.middleware("http")
    async def ensure_device_cookie(request: Request, call_next):
        device_id = cookie_device_id(request)
        response = await call_next(request)
        set_device_cookie(response, device_id, secure=config.secure_cookies)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    # ── Public endpoints ─────────────────────────────────────────────────

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/device-id")
    def device_id(request: Request) -> dict[str, Any]:
        value, source = resolve_device_id(request)
        return {"deviceId": value, "source": source}

    # ── Preferences ──────────────────────────────────────────────────────

    @app.post("/preferences", response_model=PreferenceProfile, status_code=201)
    def save_preferences(
        body: PreferencesPayload,
        device: str = Depends(require_device_id),
        services: Services = Depends(get_services),
    ) -> PreferenceProfile:
        profile = PreferenceProfile(device_id=device, **body.model_dump())
        return services.preferences.upsert(profile)

    @app.get("/preferences", response_model=PreferenceProfile)
    def get_preferences(
        device: str = Depends(require_device_id),
        services: Services = Depends(get_services),
    ) -> PreferenceProfile:
        profile = services.preferences.get(device)
        if profile is None:
            raise HTTPException(status_code=404, detail="Preferences not found")
        return profile

    # ── Menu analysis ────────────────────────────────────────────────────

    @app.post("/analyze", response_model=AnalyzeResponse)
    async def analyze(
        image: UploadFile | None = File(None),
        services: Services = Depends(get_services),
    ) -> AnalyzeResponse:
        if image is None:
            raise HTTPException(status_code=400, detail="No image file provided")

        limit = services.config.max_upload_bytes
        data = await image.read(limit + 1)
        if not data:
            raise HTTPException(status_code=400, detail="The uploaded image is empty")
        if len(data) > limit:
            raise HTTPException(
                status_code=413,
                detail=f"Image is too large. Maximum size is {limit // (1024 * 1024)} MB.",
            )

        try:
            return await asyncio.wait_for(
                _run_analysis(services, data), timeout=services.config.analyze_timeout
            )
        except UnsupportedImageError as exc:
            raise HTTPException(status_code=415, detail=str(exc)) from exc
        except asyncio.TimeoutError as exc:
            services.events.error("Menu analysis timed out", exc=exc)
            raise HTTPException(status_code=504, detail=TIMEOUT_MESSAGE) from exc

    # ── Recommendations ──────────────────────────────────────────────────

    @app.post("/recommendations", response_model=RecommendationResponse)
    def recommendations(
        body: RecommendationRequest,
        device: str = Depends(require_device_id),
        services: Services = Depends(get_services),
    ) -> RecommendationResponse:
        if not body.dishes:
            raise HTTPException(
                status_code=400, detail="No dishes provided. Please scan a menu first."
            )
        preferences = services.preferences.get(device)
        if preferences is None:
            raise HTTPException(
                status_code=400,
                detail="No preferences found. Please set your food preferences first.",
            )

        try:
            results = services.recommender.recommend(body.dishes, preferences)
        except RecommendationError as exc:
            status, detail = _recommendation_status(exc)
            services.events.error("Recommendation request failed", exc=exc, status=status)
            raise HTTPException(status_code=status, detail=detail) from exc

        if not results:
            return RecommendationResponse(recommendations=[], message=NO_MATCH_MESSAGE)
        return RecommendationResponse(
            recommendations=results,
            message=f"Found {len(results)} dishes that match your preferences!",
        )

    @app.post("/dish/detail", response_model=DishDetailResponse)
    def dish_detail(
        body: DishDetailRequest,
        services: Services = Depends(get_services),
    ) -> DishDetailResponse:
        name = body.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Dish name is required")
        description = services.descriptions.detailed_description(name, body.original_description)
        return DishDetailResponse(name=name, detailed_description=description)

    # ── Operational endpoints ────────────────────────────────────────────

    @app.get("/usage")
    def usage(services: Services = Depends(get_services)) -> dict:
        return camelize_keys(services.limiter.get_usage_stats())

    @app.get("/cache/stats")
    def cache_stats(services: Services = Depends(get_services)) -> dict:
        return camelize_keys({
            "memo": services.memo.stats(),
            "dish_cache": services.dish_cache.stats(),
        })

    @app.get("/analytics")
    def analytics(services: Services = Depends(get_services)) -> dict:
        return camelize_keys(compute_analytics(services.events.get_events()))

    return app


app = create_app()
