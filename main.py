import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from checker import check_website
from schemas import AddWebsiteRequest, CheckRequest, CheckResult, HistorySummary, MonitoredWebsite
from scoring import summarize_history
from storage import Storage, build_storage

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

WEBSITE_NOT_FOUND = "Website not found"


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


async def apply_check(storage: Storage, website: MonitoredWebsite, result: CheckResult) -> Optional[MonitoredWebsite]:
    await run_in_threadpool(storage.add_check_result, result)
    return await run_in_threadpool(storage.update_website_check, website.id, result)


async def refresh_website(storage: Storage, website: MonitoredWebsite, client: Optional[httpx.AsyncClient] = None):
    result = await check_website(website.url, client=client)
    return await apply_check(storage, website, result)


def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    ctx = errors[0].get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    return errors[0].get("msg", "Invalid request").removeprefix("Value error, ")


def create_app(storage: Optional[Storage] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "storage", None) is None:
            app.state.storage = build_storage()
        yield

    app = FastAPI(title="WebPulse", lifespan=lifespan)
    app.state.storage = storage

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": _first_error_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or "Internal server error"},
        )

    @app.post("/api/check", response_model=CheckResult, response_model_exclude_none=True)
    async def check(body: CheckRequest, storage: Storage = Depends(get_storage)):
        result = await check_website(body.url)
        return await run_in_threadpool(storage.add_check_result, result)

    @app.get("/api/websites", response_model=List[MonitoredWebsite], response_model_exclude_none=True)
    async def list_websites(storage: Storage = Depends(get_storage)):
        return await run_in_threadpool(storage.get_websites)

    @app.post("/api/websites", response_model=MonitoredWebsite, response_model_exclude_none=True)
    async def add_website(body: AddWebsiteRequest, storage: Storage = Depends(get_storage)):
        website = await run_in_threadpool(storage.add_website, body.url, body.name)
        updated = await refresh_website(storage, website)
        if updated is None:
            # removed while its first check was in flight
            raise HTTPException(status_code=404, detail=WEBSITE_NOT_FOUND)
        return updated

    @app.post("/api/websites/refresh", response_model=List[MonitoredWebsite], response_model_exclude_none=True)
    async def refresh_all_websites(storage: Storage = Depends(get_storage)):
        websites = await run_in_threadpool(storage.get_websites)
        logger.info("Refreshing %d websites", len(websites))
        async with httpx.AsyncClient(follow_redirects=True, timeout=None) as client:
            updated = await asyncio.gather(*(refresh_website(storage, w, client) for w in websites))
        return [w for w in updated if w is not None]

    @app.delete("/api/websites/{website_id}")
    async def delete_website(website_id: str, storage: Storage = Depends(get_storage)):
        if not await run_in_threadpool(storage.remove_website, website_id):
            raise HTTPException(status_code=404, detail=WEBSITE_NOT_FOUND)
        return {"success": True}

    @app.post("/api/websites/{website_id}/refresh", response_model=MonitoredWebsite, response_model_exclude_none=True)
    async def refresh_one_website(website_id: str, storage: Storage = Depends(get_storage)):
        website = await run_in_threadpool(storage.get_website, website_id)
        if website is None:
            raise HTTPException(status_code=404, detail=WEBSITE_NOT_FOUND)
        updated = await refresh_website(storage, website)
        if updated is None:
            raise HTTPException(status_code=404, detail=WEBSITE_NOT_FOUND)
        return updated

    @app.get("/api/history", response_model=List[CheckResult], response_model_exclude_none=True)
    async def history(url: Optional[str] = None, storage: Storage = Depends(get_storage)):
        return await run_in_threadpool(storage.get_check_history, url)

    @app.get("/api/history/summary", response_model=HistorySummary)
    async def history_summary(url: Optional[str] = None, storage: Storage = Depends(get_storage)):
        results = await run_in_threadpool(storage.get_check_history, url)
        return summarize_history(results)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
