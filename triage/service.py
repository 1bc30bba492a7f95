"""FastAPI service exposing the scan.

Run locally:
    uvicorn triage.service:app --host 0.0.0.0 --port 9000

The classifier is loaded once at startup. If that fails, /health reports
the error and /scan answers 503 until the service is restarted with a
usable model.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .classifier import ClassifierHandle, initialize
from .config import Settings
from .errors import ClassifierInitError, ScanCancelledError
from .metadata import StaticMetadataProvider, metadata_from_record
from .models import FEATURE_NAMES, RISK_THRESHOLD
from .report import format_report
from .scanner import run_scan


logger = logging.getLogger(__name__)


class ApplicationIn(BaseModel):
    package_name: str = Field(..., min_length=1, pattern=r"\S")
    permissions: Optional[List[str]] = None
    protection_levels: Dict[str, Union[int, str]] = Field(default_factory=dict)
    activity_count: Optional[int] = Field(None, ge=0)
    service_count: Optional[int] = Field(None, ge=0)
    is_system_app: bool = False
    installed_size: Optional[int] = Field(None, ge=0)


class ScanRequest(BaseModel):
    applications: List[ApplicationIn] = Field(default_factory=list)
    exclude_self: str = ""


def create_app(settings: Optional[Settings] = None, classifier: Optional[ClassifierHandle] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.classifier = classifier
        app.state.init_error = None
        if app.state.classifier is None:
            try:
                app.state.classifier = initialize(settings.model_path)
            except ClassifierInitError as e:
                logger.error(f"Failed to initialize model: {e}")
                app.state.init_error = str(e)
        yield
        if app.state.classifier is not None:
            app.state.classifier.close()

    app = FastAPI(title="Adware Triage", version="1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        handle = app.state.classifier
        return {
            "status": "ok" if handle is not None else "degraded",
            "model_loaded": handle is not None,
            "model_type": handle.model_type if handle is not None else None,
            "error": app.state.init_error,
            "threshold": RISK_THRESHOLD,
            "feature_order": list(FEATURE_NAMES),
        }

    @app.post("/scan")
    def scan(req: ScanRequest):
        handle = app.state.classifier
        if handle is None:
            raise HTTPException(status_code=503, detail=f"Model failed to load: {app.state.init_error}")
        provider = StaticMetadataProvider(
            metadata_from_record(a.model_dump()) for a in req.applications
        )
        try:
            report = run_scan(
                handle,
                provider,
                exclude_self=req.exclude_self,
                workers=settings.workers,
                app_timeout=settings.app_timeout_or_none,
            )
        except ScanCancelledError as e:
            raise HTTPException(status_code=409, detail=str(e))
        out = report.to_dict()
        out["text"] = format_report(report)
        return out

    return app


app = create_app()
