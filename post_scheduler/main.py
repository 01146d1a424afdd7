# post_scheduler/main.py
import os

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from .errors import DependencyError
from .infrastructure.database import init_db
from .middleware.logging import RequestIdMiddleware, configure_structlog
from .routers.calendar_router import router as calendar_router
from .routers.connections_router import router as connections_router
from .routers.draft_router import router as draft_router
from .routers.schedule_router import router as schedule_router

configure_structlog()
logger = structlog.get_logger()

app = FastAPI(title="Post Scheduler")

app.add_middleware(RequestIdMiddleware)

app.include_router(schedule_router)
app.include_router(calendar_router)
app.include_router(draft_router)
app.include_router(connections_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed input is a 400 for every endpoint
    logger.info("request_validation_failed", errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(DependencyError)
async def dependency_error_handler(request: Request, exc: DependencyError):
    logger.error("dependency_unavailable", error=str(exc))
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.on_event("startup")
async def on_startup():
    await init_db()
    logger.info("app_startup")


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("post_scheduler.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
