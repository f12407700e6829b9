"""
ChatLens HTTP API
=================

Endpoints:
- POST /api/analyze              -> submit a chat export, returns the new job
- GET  /api/analysis/{job_id}    -> poll a job record
- GET  /health                   -> which pipeline path new jobs will take

Usage:
    python serve.py
"""

from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from chatlens.errors import InputValidationError
from chatlens.models import AnalysisJob, AnalysisRequest
from chatlens.pipeline import AnalysisPipeline


def create_app(pipeline: AnalysisPipeline, allow_origins: Optional[list] = None) -> FastAPI:
    app = FastAPI(
        title="ChatLens API",
        version="0.1.0",
        description="Relationship-communication analysis for chat exports",
    )
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins or ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {
            "status": "online",
            "path": "full" if pipeline.providers.full_pipeline_available else "simple",
        }

    @app.post("/api/analyze", response_model=AnalysisJob, response_model_by_alias=True)
    async def analyze(request: AnalysisRequest):
        """Create a job and start it in the background; poll the returned id."""
        try:
            return pipeline.submit(request)
        except InputValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/api/analysis/{job_id}", response_model=AnalysisJob, response_model_by_alias=True)
    async def get_analysis(job_id: str):
        job = pipeline.store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Analysis not found")
        return job

    return app
