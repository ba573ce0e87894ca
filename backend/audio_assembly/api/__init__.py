# Router aggregator – import each route module here and expose ``api_router``
# for convenient inclusion in the FastAPI app.

from fastapi import APIRouter

from . import routes_assembly, routes_jobs, routes_storage


api_router = APIRouter()
api_router.include_router(routes_assembly.router, prefix="/audio-assembly", tags=["audio-assembly"])
api_router.include_router(routes_jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(routes_storage.router, prefix="/storage", tags=["storage"])
