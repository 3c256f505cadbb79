# catalog/main.py
import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Body, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from .db import Base, engine, get_db
from .deps import add_cors, get_product_service
from .errors import CatalogError, PersistenceError
from .products import ProductFields, ProductService
from .reconciler import FileBlob, ImageMode
from .schemas import (
    ProductOut, CreateResponse, UpdateResponse, SuccessResponse, VisitStat,
)
from .visits import record_visit, monthly_stats

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# 🚀 Initialization
# ---------------------------------------------------------
Base.metadata.create_all(bind=engine)
app = FastAPI(title="Product Catalog API", version="1.0.0")
add_cors(app, config.CORS_ORIGINS)


# ---------------------------------------------------------
# ⚠️ Error mapping
# ---------------------------------------------------------
@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc!r}", exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"❌ {request.method} {request.url.path} database error: {exc!r}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": PersistenceError.public_message})


def _read_uploads(images: Optional[List[UploadFile]]) -> List[FileBlob]:
    """Turn multipart parts into blobs, skipping empty file inputs."""
    blobs = []
    for upload in images or []:
        # Read one byte past the limit so oversize files are still detected
        data = upload.file.read(config.MAX_FILE_SIZE + 1)
        if not upload.filename and not data:
            continue
        blobs.append(FileBlob(
            filename=upload.filename or "",
            content_type=upload.content_type or "application/octet-stream",
            data=data,
        ))
    return blobs


def _fixed_slots(service: ProductService) -> bool:
    return service.mode is ImageMode.APPEND_FIXED_SLOTS


# ---------------------------------------------------------
# 🩺 Health check
# ---------------------------------------------------------
@app.get("/")
def root():
    return {"status": "ok", "message": "🚀 Backend running"}

@app.get("/health")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------
# 🛒 Products
# ---------------------------------------------------------
@app.get("/products")
def list_products(service: ProductService = Depends(get_product_service)):
    fixed = _fixed_slots(service)
    return [ProductOut.from_product(p, fixed).to_json() for p in service.list()]


@app.get("/products/{product_id}")
def get_product(product_id: int, service: ProductService = Depends(get_product_service)):
    return ProductOut.from_product(service.get(product_id), _fixed_slots(service)).to_json()


@app.post("/products", response_model=CreateResponse, status_code=201)
def create_product(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    discount: Optional[str] = Form(None),
    display_order: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    service: ProductService = Depends(get_product_service),
):
    fields = ProductFields.from_form(name, description, price, discount, display_order)
    product, dropped = service.create(fields, _read_uploads(images))
    return CreateResponse(
        id=product.id,
        image_main=product.image_main,
        images=product.image_urls,
        dropped=[b.filename for b in dropped],
    )


@app.put("/products/{product_id}", response_model=UpdateResponse)
def update_product(
    product_id: int,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    discount: Optional[str] = Form(None),
    display_order: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    service: ProductService = Depends(get_product_service),
):
    fields = ProductFields.from_form(name, description, price, discount, display_order)
    product, dropped = service.update(product_id, fields, _read_uploads(images))
    return UpdateResponse(
        image_main=product.image_main,
        images=product.image_urls,
        dropped=[b.filename for b in dropped],
    )


@app.delete("/products/{product_id}", response_model=SuccessResponse)
def delete_product(product_id: int, service: ProductService = Depends(get_product_service)):
    service.delete(product_id)
    return SuccessResponse()


@app.post("/products/reorder", response_model=SuccessResponse)
def reorder_products(payload: Any = Body(None), service: ProductService = Depends(get_product_service)):
    # Any JSON shape is accepted here; a wrong one is a 400 from the service
    ordered_ids = payload.get("orderedIds") if isinstance(payload, dict) else None
    service.reorder(ordered_ids)
    return SuccessResponse()


# ---------------------------------------------------------
# 👀 Visits (admin)
# ---------------------------------------------------------
@app.post("/track-visit")
def track_visit(db: Session = Depends(get_db)):
    record_visit(db)
    return {"status": "ok"}


@app.get("/admin/stats", response_model=List[VisitStat])
def admin_stats(db: Session = Depends(get_db)):
    return monthly_stats(db)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("catalog.main:app", host="0.0.0.0", port=config.PORT, log_level="info")
