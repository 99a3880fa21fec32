"""FastAPI frontend for KidPicks recommendations.

The web service exposes the recommendation engine, the feedback recorder and
per-user weight settings as JSON endpoints over SQLite persistence.  It is
import-compatible with ``kidpicks.webapp`` for ``uvicorn kidpicks.webapp:app``
deployments.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional

from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse

from ..engine import RecommendationEngine
from ..exceptions import (
    ActivityNotFoundError,
    ContextNotFoundError,
    DuplicateContextError,
    InvalidWeightError,
    KidNotFoundError,
    StoreUnavailableError,
    UnknownPresetError,
)
from ..feedback import FeedbackRecorder
from ..models import ActivityContext, PreferenceLevel, RecommendationContext, RecommendationRequest, RequestedContext
from ..ops import HealthMonitor, StructuredLogger
from ..presentation import confidence_stars, describe_reasons, score_percent
from ..store import PreferenceStore
from ..weights import PRESETS, WeightConfiguration, WeightSet
from .config import (
    DEFAULT_RECOMMENDATION_LIMIT,
    EVENT_LOG_PATH,
    MAX_RECOMMENDATION_LIMIT,
    PEER_QUERY_TIMEOUT_SECONDS,
    PEER_QUERY_WORKERS,
    WEIGHT_CACHE_TTL_SECONDS,
)
from .persistence import SqlPreferenceStore, create_db_and_tables


@dataclass
class Services:
    """Collaborators shared by every request handler."""

    store: PreferenceStore
    logger: StructuredLogger
    health: HealthMonitor
    weights: WeightConfiguration
    engine: RecommendationEngine
    recorder: FeedbackRecorder


def build_services(
    store: PreferenceStore | None = None,
    *,
    logger: StructuredLogger | None = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> Services:
    store = store or SqlPreferenceStore()
    logger = logger or StructuredLogger(path=Path(EVENT_LOG_PATH) if EVENT_LOG_PATH else None)
    health = HealthMonitor()
    weights = WeightConfiguration(
        store,
        ttl_seconds=WEIGHT_CACHE_TTL_SECONDS,
        clock=clock,
        logger=logger,
        health=health,
    )
    engine = RecommendationEngine(
        store,
        weights,
        logger=logger,
        health=health,
        clock=clock,
        peer_timeout=PEER_QUERY_TIMEOUT_SECONDS,
        max_workers=PEER_QUERY_WORKERS,
    )
    recorder = FeedbackRecorder(store, logger=logger, health=health, clock=clock)
    return Services(store=store, logger=logger, health=health, weights=weights, engine=engine, recorder=recorder)


def configure(
    store: PreferenceStore | None = None,
    *,
    logger: StructuredLogger | None = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> Services:
    """Swap the collaborators used by :data:`app` (tests, alternate stores)."""

    services = build_services(store, logger=logger, clock=clock)
    app.state.services = services
    return services


def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    services: Optional[Services] = getattr(application.state, "services", None)
    if services is None:
        services = build_services()
        application.state.services = services
    if isinstance(services.store, SqlPreferenceStore):
        create_db_and_tables(services.store.engine)
    yield


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
app = FastAPI(title="KidPicks", lifespan=_lifespan)
app.state.services = None


@app.exception_handler(StoreUnavailableError)
def _store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    get_services(request).health.mark_store_down(str(exc))
    return JSONResponse(
        {"detail": "The preference store is temporarily unavailable. Please try again.", "retryable": True},
        status_code=503,
    )


@app.exception_handler(KidNotFoundError)
@app.exception_handler(ActivityNotFoundError)
@app.exception_handler(ContextNotFoundError)
def _not_found(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(DuplicateContextError)
def _conflict(request: Request, exc: DuplicateContextError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=409)


@app.exception_handler(InvalidWeightError)
@app.exception_handler(UnknownPresetError)
@app.exception_handler(ValueError)
def _invalid_input(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=422)


# ---------------------------------------------------------------------------
# Request parsing helpers
# ---------------------------------------------------------------------------
def _require_text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None or not str(value).strip():
        raise ValueError(f"'{key}' is required.")
    return str(value).strip()


def _optional_text(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _optional_mapping(payload: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"'{key}' must be an object.")
    return dict(value)


def _parse_limit(raw: Any) -> int:
    if raw is None or raw == "":
        return DEFAULT_RECOMMENDATION_LIMIT
    if isinstance(raw, bool):
        raise ValueError("'limit' must be a whole number.")
    try:
        limit = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("'limit' must be a whole number.") from exc
    if not 1 <= limit <= MAX_RECOMMENDATION_LIMIT:
        raise ValueError(f"'limit' must be between 1 and {MAX_RECOMMENDATION_LIMIT}.")
    return limit


def _parse_score(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError("'score' must be a number.")
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("'score' must be a number.") from exc


def _parse_fit_score(raw: Any) -> float:
    if raw is None:
        return 1.0
    if isinstance(raw, bool):
        raise ValueError("'fitScore' must be a number.")
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("'fitScore' must be a number.") from exc


def _context_payload(context: RecommendationContext) -> Dict[str, Any]:
    return {
        "id": context.id,
        "name": context.name,
        "contextType": context.context_type,
        "attributes": dict(context.attributes),
        "description": context.description,
    }


def _tag_payload(tag: ActivityContext) -> Dict[str, Any]:
    return {"activityId": tag.activity_id, "context": _context_payload(tag.context), "fitScore": tag.fit_score}


def _weights_payload(user_id: str, weights: WeightSet) -> Dict[str, Any]:
    return {
        "userId": user_id,
        "weights": weights.as_dict(),
        "enabled": weights.enabled,
        "normalized": {name: round(value, 4) for name, value in weights.normalized().items()},
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.post("/api/recommendations")
def recommend(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    services = get_services(request)
    user_id = _optional_text(payload, "userId")
    exclude = payload.get("exclude") or []
    if not isinstance(exclude, list):
        raise ValueError("'exclude' must be a list of activity ids.")
    result = services.engine.recommend(
        RecommendationRequest(
            kid_id=_require_text(payload, "kidId"),
            context=RequestedContext.from_mapping(_optional_mapping(payload, "context")),
            limit=_parse_limit(payload.get("limit")),
            user_id=user_id,
            exclude=frozenset(str(item) for item in exclude),
        )
    )
    items = []
    for item in result.items:
        percent = score_percent(item.score)
        card = item.as_dict()
        card["percent"] = percent
        card["stars"] = confidence_stars(percent)
        card["reasons"] = [{"kind": reason.kind, "text": reason.text} for reason in describe_reasons(item.explanation)]
        items.append(card)
    return JSONResponse(
        {
            "kidId": result.kid_id,
            "items": items,
            "degraded": result.degraded,
            "degradedFactors": list(result.degraded_factors),
        }
    )


@app.post("/api/feedback")
def record_feedback(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    services = get_services(request)
    record = services.recorder.record(
        _require_text(payload, "kidId"),
        _require_text(payload, "activityId"),
        _require_text(payload, "action"),
        score=_parse_score(payload.get("score")),
        explanation=_optional_mapping(payload, "explanation"),
        context=_optional_mapping(payload, "context"),
    )
    return JSONResponse(
        {
            "status": "recorded",
            "id": record.id,
            "kidId": record.kid_id,
            "activityId": record.activity_id,
            "action": record.action.value,
            "createdAt": record.created_at.isoformat(),
        },
        status_code=201,
    )


@app.post("/api/preferences/adopt")
def adopt_preference(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    services = get_services(request)
    level = _optional_text(payload, "level") or PreferenceLevel.LIKES.value
    preference = services.recorder.adopt(
        _require_text(payload, "kidId"),
        _require_text(payload, "activityId"),
        PreferenceLevel(level),
    )
    return JSONResponse(
        {"kidId": preference.kid_id, "activityId": preference.activity_id, "level": preference.level.value}
    )


@app.get("/api/weights/{user_id}")
def read_weights(request: Request, user_id: str) -> JSONResponse:
    services = get_services(request)
    return JSONResponse(_weights_payload(user_id, services.weights.load_weights(user_id)))


@app.put("/api/weights/{user_id}")
def update_weight(request: Request, user_id: str, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    services = get_services(request)
    enabled = payload.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ValueError("'enabled' must be true or false.")
    weights = services.weights.set_weight(
        user_id,
        _require_text(payload, "factorName"),
        payload.get("weight"),
        enabled=enabled,
    )
    return JSONResponse(_weights_payload(user_id, weights))


@app.post("/api/weights/{user_id}/preset")
def apply_preset(request: Request, user_id: str, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    services = get_services(request)
    weights = services.weights.apply_preset(user_id, _require_text(payload, "presetName"))
    return JSONResponse(_weights_payload(user_id, weights))


@app.post("/api/contexts")
def create_context(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
    services = get_services(request)
    context = services.store.create_context(
        _require_text(payload, "name"),
        _optional_text(payload, "contextType") or "",
        _optional_text(payload, "description"),
    )
    services.logger.log("context_created", context=context.id, name=context.name, type=context.context_type)
    return JSONResponse(_context_payload(context), status_code=201)


@app.put("/api/activities/{activity_id}/contexts/{context_id}")
def tag_activity(
    request: Request,
    activity_id: str,
    context_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
) -> JSONResponse:
    services = get_services(request)
    tag = services.store.tag_activity(activity_id, context_id, _parse_fit_score((payload or {}).get("fitScore")))
    services.logger.log("activity_tagged", activity=activity_id, context=context_id, fit_score=tag.fit_score)
    return JSONResponse(_tag_payload(tag))


@app.delete("/api/activities/{activity_id}/contexts/{context_id}")
def untag_activity(request: Request, activity_id: str, context_id: str) -> JSONResponse:
    services = get_services(request)
    if not services.store.untag_activity(activity_id, context_id):
        return JSONResponse({"detail": f"Activity '{activity_id}' is not tagged with '{context_id}'."}, status_code=404)
    services.logger.log("activity_untagged", activity=activity_id, context=context_id)
    return JSONResponse({"activityId": activity_id, "contextId": context_id, "removed": True})


@app.get("/api/presets")
def list_presets() -> JSONResponse:
    return JSONResponse({name: dict(values) for name, values in PRESETS.items()})


@app.get("/health")
def health(request: Request) -> JSONResponse:
    services = get_services(request)
    status = services.health.status()
    return JSONResponse(status, status_code=200 if services.health.store_online else 503)


__all__ = [
    "app",
    "Services",
    "build_services",
    "configure",
    "get_services",
]
