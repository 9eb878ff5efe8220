import logging
import os
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from backend.database import close_db
from backend.errors import InvalidInput
from backend.models import CatalogConfig, FetchResult, PricesResponse, ResolvedItem
from backend.retrieval import browser, direct
from backend.services import catalog as catalog_service
from backend.services import pipeline
from backend.services.board import board

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Uvicorn runs this on SIGINT/SIGTERM
    logger.info("Shutting down")
    await browser.browser_manager.close()
    await close_db()


app = FastAPI(title="Price Compare", version="1.0.0", lifespan=lifespan)


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(
        status_code=400, content={"ok": False, "error": str(exc)}, headers=NO_STORE
    )


def _fetch_response(result: FetchResult) -> JSONResponse:
    if result.ok:
        body = result.model_dump(
            mode="json", by_alias=True, include={"ok", "status", "url", "html", "fetched_at", "rendered"}
        )
        return JSONResponse(content=body, headers=NO_STORE)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": result.error or "Fetch failed"},
        headers=NO_STORE,
    )


async def _current_catalog() -> CatalogConfig:
    if board.catalog is None:
        board.reset(await catalog_service.get_catalog())
    return board.catalog


# --- Retrieval endpoints ---


@app.get("/api/fetch")
async def api_fetch(
    url: str | None = Query(None, description="Absolute http(s) URL"),
    t: str | None = Query(None, description="Cache-bust token"),
):
    result = await direct.retrieve_direct(url, cache_bust=t)
    return _fetch_response(result)


@app.get("/api/render")
async def api_render(
    url: str | None = Query(None, description="Absolute http(s) URL"),
    selector: str | None = Query(None, description="Selector to wait for"),
    wait_ms: int | None = Query(None, alias="waitMs", ge=0),
    ua: str | None = Query(None, description="User-Agent override"),
):
    result = await browser.retrieve_rendered(
        url, wait_selector=selector, wait_ms=wait_ms, user_agent=ua
    )
    return _fetch_response(result)


# --- Catalog configuration ---


@app.get("/api/config", response_model=CatalogConfig)
async def api_get_config():
    return await _current_catalog()


@app.put("/api/config", response_model=CatalogConfig)
async def api_put_config(body: Any = Body(...)):
    catalog = await catalog_service.apply_catalog(body)
    board.reset(catalog)
    return catalog


@app.delete("/api/config", response_model=CatalogConfig)
async def api_reset_config():
    catalog = await catalog_service.reset_catalog()
    board.reset(catalog)
    return catalog


# --- Prices ---


@app.get("/api/prices", response_model=PricesResponse)
async def api_prices():
    await _current_catalog()
    return board.snapshot()


@app.post("/api/refresh", response_model=PricesResponse)
async def api_refresh(force: bool = Query(False)):
    catalog = await _current_catalog()
    return await pipeline.refresh_all(catalog, force=force)


@app.post("/api/items/{item_id}/offers/{index}/refresh", response_model=ResolvedItem)
async def api_refresh_offer(item_id: str, index: int, force: bool = Query(False)):
    await _current_catalog()
    if not board.has_offer(item_id, index):
        raise HTTPException(status_code=404, detail="Unknown item or offer")
    return await pipeline.refresh_offer(item_id, index, force=force)


@app.get("/api/health")
async def api_health():
    return {"ok": True}


if __name__ == "__main__":
    uvicorn.run("backend.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
