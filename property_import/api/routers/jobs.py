"""
Endpoints for tracking import job progress.
"""
from fastapi import APIRouter, Depends, HTTPException

from property_import.api.dependencies import get_orchestrator
from property_import.api.schemas.shared import (
    CacheStatsResponse,
    ImportJobListResponse,
    ImportJobResponse,
)
from property_import.domain.imports.orchestrator import ImportOrchestrator

router = APIRouter(tags=["import-jobs"])


@router.get("/import-jobs", response_model=ImportJobListResponse)
async def list_import_jobs_endpoint(orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    jobs = orchestrator.registry.list_active()
    return ImportJobListResponse(success=True, jobs=jobs, total_count=len(jobs))


@router.get("/import-jobs/cache-stats", response_model=CacheStatsResponse)
async def cache_stats_endpoint(orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    return CacheStatsResponse(success=True, caches=orchestrator.caches.stats())


@router.get("/import-jobs/{import_id}", response_model=ImportJobResponse)
async def get_import_job_endpoint(import_id: str, orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    job = orchestrator.registry.get(import_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return ImportJobResponse(success=True, job=job)
