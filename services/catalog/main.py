"""Catalog service API built with FastAPI.

This module exposes endpoints to look up products in batch and to drive the
availability state machine (reserve, release, finalize) used by the checkout
gateway. Validation is performed with Pydantic models, while persistence and
locking is delegated to the SQLAlchemy-backed repository in
``repo.CatalogRepo``.
"""

import uuid, logging
import time
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from sqlalchemy import text
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, constr
from pythonjsonlogger import jsonlogger

from repo import CatalogRepo, init_db, engine

ProductId = constr(min_length=1, max_length=64)

# logger JSON
logger = logging.getLogger("catalog")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


def _wait_for_db(timeout_secs: float = 30.0):
    # poll until the database accepts connections
    deadline = time.time() + timeout_secs
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    _wait_for_db()
    init_db()
    yield


app = FastAPI(title="Catalog Service", lifespan=lifespan)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LookupRequest(CamelModel):
    """Request body for batched product lookup.

    Attributes:
        ids: Product identifiers to resolve in one query.
    """
    ids: List[ProductId] = Field(max_length=200)


class ProductOut(CamelModel):
    id: str
    title: str
    price: int
    category: str
    condition: str
    image: Optional[str] = None
    seller_id: str = Field(serialization_alias="sellerId")
    seller_name: str = Field(serialization_alias="sellerName")
    status: Literal["available", "reserved", "sold"]
    shipping_payer: Literal["seller", "buyer"] = Field(serialization_alias="shippingPayer")
    reserved_by: Optional[str] = Field(default=None, serialization_alias="reservedBy")


class LookupResponse(CamelModel):
    products: List[ProductOut]


class ProductIn(CamelModel):
    """Upsert body used to seed or edit a product."""
    title: str = Field(min_length=1, max_length=120)
    price: int = Field(ge=0)
    category: str = "other"
    condition: str = "good"
    image: Optional[str] = None
    seller_id: str = Field(alias="sellerId", min_length=1)
    seller_name: str = Field(alias="sellerName", default="")
    status: Literal["available", "reserved", "sold"] = "available"
    shipping_payer: Literal["seller", "buyer"] = Field(alias="shippingPayer", default="seller")


class HoldRequest(CamelModel):
    """Request body shared by reserve, release and finalize.

    Attributes:
        holder: Buyer id owning the reservation. Empty on finalize for
            sales that never took a reservation.
        product_ids: Products to transition.
        ttl_seconds: Reservation lifetime (reserve only).
    """
    holder: str = Field(default="", max_length=64)
    product_ids: List[ProductId] = Field(alias="productIds", min_length=1, max_length=200)
    ttl_seconds: int = Field(alias="ttlSeconds", default=1800, gt=0, le=24 * 3600)


def _conflicts(items: list[dict]) -> list[dict]:
    return [{"productId": c["product_id"], "reason": c["reason"]} for c in items]


@app.get("/health")
def health():
    """Liveness/health probe endpoint."""
    return {"ok": True}


@app.post("/products/lookup", response_model=LookupResponse, response_model_by_alias=True)
def lookup(req: LookupRequest):
    """Resolve a batch of product ids. Unknown ids are simply absent."""
    products = CatalogRepo().lookup(list(dict.fromkeys(req.ids)))
    return LookupResponse(products=[ProductOut(**p) for p in products])


@app.put("/products/{product_id}", response_model=ProductOut, response_model_by_alias=True)
def upsert(product_id: str, body: ProductIn):
    return ProductOut(**CatalogRepo().upsert(product_id, **body.model_dump()))


@app.post("/reserve")
def reserve(req: HoldRequest):
    """Reserve every product for ``holder`` or none of them.

    Returns:
        dict: ``{"reserved": true}`` on success.

    Raises:
        409 JSON response with ``conflicts`` when any product is sold, held by
        another buyer or unknown.
    """
    if not req.holder:
        return JSONResponse(status_code=422, content={"reserved": False, "detail": "HOLDER_REQUIRED"})
    conflicts = CatalogRepo().reserve(req.holder, list(dict.fromkeys(req.product_ids)), req.ttl_seconds)
    if conflicts:
        logger.info("reservation conflict", extra={"holder": req.holder, "conflicts": conflicts})
        return JSONResponse(status_code=409, content={"reserved": False, "conflicts": _conflicts(conflicts)})
    return {"reserved": True}


@app.post("/release")
def release(req: HoldRequest):
    released = CatalogRepo().release(req.holder, list(dict.fromkeys(req.product_ids)))
    return {"released": released}


@app.post("/finalize")
def finalize(req: HoldRequest):
    sold, conflicts = CatalogRepo().finalize(req.holder, list(dict.fromkeys(req.product_ids)))
    if conflicts:
        logger.warning("finalize conflict", extra={"holder": req.holder, "conflicts": conflicts})
    return {"sold": sold, "conflicts": _conflicts(conflicts)}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
