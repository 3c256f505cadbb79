from fastapi import Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from .db import get_db
from .products import ProductService
from .storage_client import get_storage

def add_cors(app, origins=None):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

def get_product_service(db: Session = Depends(get_db), store=Depends(get_storage)) -> ProductService:
    return ProductService(db, store)
