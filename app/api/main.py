from contextlib import asynccontextmanager
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from canonical_redirect.errors import CanonicalUrlError, classify_exception
from canonical_redirect.logging_config import get_logger, level_from_env, setup_logging
from canonical_redirect.middleware import add_redirect_to_canonical_url
from canonical_redirect.options import CanonicalUrlOptions
from canonical_redirect.rule import RedirectToCanonicalUrlRule
from canonical_redirect.telemetry import setup_telemetry
from canonical_redirect.url_building import request_from_url

# ---------- Settings ----------
SERVICE_NAME = os.getenv("SERVICE_NAME", "canonical-redirect").strip() or "canonical-redirect"
CANONICAL_OPTIONS = CanonicalUrlOptions.from_env()

logger = get_logger(__name__)


class EvaluateRequest(BaseModel):
    url: str = Field(..., description="Absolute URL as a client would request it")
    path_base: str = Field("", description="Mount prefix of the application, if any")


class EvaluateResponse(BaseModel):
    action: str
    status_code: Optional[int] = None
    location: Optional[str] = None


async def healthz():
    return {"ok": True}


async def evaluate_url(req: EvaluateRequest, request: Request) -> EvaluateResponse:
    try:
        descriptor = request_from_url(req.url, path_base=req.path_base)
        verdict = request.app.state.dry_run_rule.apply(descriptor)
    except CanonicalUrlError as e:
        info = classify_exception(e)
        raise HTTPException(status_code=400, detail=f"{info.code}: {info.message}")
    return EvaluateResponse(**verdict.as_dict())


def create_app(options: CanonicalUrlOptions) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(SERVICE_NAME, level=level_from_env())
        setup_telemetry(service_name=SERVICE_NAME)
        logger.info(
            "Canonical URL redirect enabled (primary_host=%s trailing_slash=%s lowercase=%s status=%s)",
            options.primary_host or "-",
            options.trailing_slash.value,
            options.is_forcing_lowercase,
            options.status_code,
        )
        yield

    app = FastAPI(title="Canonical URL Redirect", lifespan=lifespan)
    # Dry-run evaluations are not redirects that happened; keep them out of the log.
    app.state.dry_run_rule = RedirectToCanonicalUrlRule(options, logger=None)

    # Both slash forms are served so the canonical form is reachable under any
    # trailing slash action.
    for path in ("/healthz", "/healthz/"):
        app.add_api_route(
            path, healthz, methods=["GET"], include_in_schema=not path.endswith("/")
        )
    for path in ("/canonical-url/evaluate", "/canonical-url/evaluate/"):
        app.add_api_route(
            path,
            evaluate_url,
            methods=["POST"],
            response_model=EvaluateResponse,
            include_in_schema=not path.endswith("/"),
        )

    add_redirect_to_canonical_url(app, options)
    return app


app = create_app(CANONICAL_OPTIONS)
