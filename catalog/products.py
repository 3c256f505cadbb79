# catalog/products.py
"""
Product record manager.

Owns the create / update / delete lifecycle of a product row. Image handling
is delegated to the reconciler; every read-modify-write of a product's image
set happens under that product's advisory lock.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, update as sql_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from .errors import ValidationError, NotFoundError, StorageError, PartialUploadFailure, PersistenceError
from .locks import KeyedLock, product_locks
from .models import Product, ProductImage
from .normalize import clean_text, parse_number, parse_int, clamp_discount, require_name
from .reconciler import (
    FileBlob, ImageMode, Plan, StoredImage,
    reconcile, perform_uploads, rollback, delete_objects,
)

logger = logging.getLogger(__name__)


@dataclass
class ProductFields:
    """Scalar fields of a create/update request. None means "not supplied"."""
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    discount: Optional[float] = None
    display_order: Optional[int] = None

    @classmethod
    def from_form(cls, name=None, description=None, price=None, discount=None, display_order=None):
        return cls(
            name=clean_text(name),
            description=clean_text(description),
            price=parse_number(price, "price"),
            discount=parse_number(discount, "discount"),
            display_order=parse_int(display_order, "display_order"),
        )


class ProductService:

    def __init__(
        self,
        db: Session,
        store,
        capacity: int = config.IMAGE_CAPACITY,
        mode: ImageMode = ImageMode(config.IMAGE_MODE),
        max_file_size: int = config.MAX_FILE_SIZE,
        max_files: int = config.MAX_UPLOAD_FILES,
        deadline: float = config.UPLOAD_DEADLINE,
        workers: int = config.UPLOAD_WORKERS,
        manual_order: bool = config.MANUAL_ORDER,
        locks: KeyedLock = product_locks,
    ):
        self.db = db
        self.store = store
        self.capacity = capacity
        self.mode = mode
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.deadline = deadline
        self.workers = workers
        self.manual_order = manual_order
        self.locks = locks

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------
    def list(self) -> List[Product]:
        stmt = select(Product)
        if self.manual_order:
            stmt = stmt.order_by(Product.display_order.asc(), Product.id.desc())
        else:
            stmt = stmt.order_by(Product.id.desc())
        return list(self.db.execute(stmt).scalars())

    def get(self, product_id: int) -> Product:
        return self._load(product_id)

    # -----------------------------------------------------
    # Create
    # -----------------------------------------------------
    def create(self, fields: ProductFields, files: Sequence[FileBlob] = ()) -> Tuple[Product, List[FileBlob]]:
        name = require_name(fields.name)
        price = self._check_price(fields.price if fields.price is not None else 0.0)
        discount = clamp_discount(fields.discount) if fields.discount is not None else 0.0
        self._check_files(files)

        folder = uuid.uuid4().hex
        # Every mode starts from an empty set, so creation is always an append
        mode = self.mode if self.mode.appends else ImageMode.APPEND_VARIABLE
        plan = reconcile([], files, self.capacity, mode, folder, self.store.public_url)
        uploaded = self._upload(plan)

        product = Product(
            name=name,
            description=fields.description or "",
            price=price,
            discount=discount,
            display_order=fields.display_order or 0,
            image_folder=folder,
        )
        self._apply_images(product, plan)

        try:
            self.db.add(product)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"❌ Insert of product '{name}' failed, rolling back {len(uploaded)} upload(s)")
            rollback(self.store, uploaded)
            raise PersistenceError("product insert failed") from e

        self.db.refresh(product)
        logger.info(f"✅ Created product {product.id} '{name}' with {len(plan.final)} image(s)")
        return product, plan.dropped

    # -----------------------------------------------------
    # Update
    # -----------------------------------------------------
    def update(self, product_id: int, fields: ProductFields,
               files: Sequence[FileBlob] = ()) -> Tuple[Product, List[FileBlob]]:
        with self.locks.hold(product_id):
            product = self._load(product_id, for_update=True)

            # Validate everything before any upload so a bad request leaves no objects behind
            try:
                name = require_name(fields.name) if fields.name is not None else None
                price = self._check_price(fields.price) if fields.price is not None else None
                self._check_files(files)
            except ValidationError:
                self.db.rollback()
                raise

            if name is not None:
                product.name = name
            if fields.description is not None:
                product.description = fields.description
            if price is not None:
                product.price = price
            if fields.discount is not None:
                product.discount = clamp_discount(fields.discount)
            if fields.display_order is not None:
                product.display_order = fields.display_order

            plan: Optional[Plan] = None
            uploaded: List[str] = []
            current_keys = set()
            if files:
                current = [StoredImage(key=img.storage_key, url=img.url) for img in product.images]
                current_keys = {img.key for img in current}
                plan = reconcile(current, files, self.capacity, self.mode,
                                 product.image_folder, self.store.public_url)
                try:
                    uploaded = self._upload(plan, keep=current_keys)
                except PartialUploadFailure:
                    self.db.rollback()
                    raise
                self._apply_images(product, plan)

            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception(f"❌ Update of product {product_id} failed")
                rollback(self.store, [k for k in uploaded if k not in current_keys])
                raise PersistenceError("product update failed") from e

            if plan is not None and plan.to_delete:
                try:
                    delete_objects(self.store, [img.key for img in plan.to_delete], self.workers)
                except StorageError:
                    # Row already points at the new set; these are now unreferenced
                    logger.exception(
                        f"❌ Product {product_id} updated but replaced objects were not removed: "
                        f"{[img.key for img in plan.to_delete]}"
                    )

            self.db.refresh(product)
            logger.info(f"✅ Updated product {product_id}")
            return product, (plan.dropped if plan else [])

    # -----------------------------------------------------
    # Delete
    # -----------------------------------------------------
    def delete(self, product_id: int) -> None:
        with self.locks.hold(product_id):
            product = self._load(product_id, for_update=True)
            keys = [img.storage_key for img in product.images]

            try:
                delete_objects(self.store, keys, self.workers)
            except StorageError:
                self.db.rollback()
                logger.exception(f"❌ Could not remove images of product {product_id}, row kept for retry")
                raise

            try:
                self.db.delete(product)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"❌ Inconsistent product {product_id}: storage objects {keys} were deleted "
                    f"but the row could not be removed: {e}"
                )
                raise PersistenceError("product delete failed") from e

            logger.info(f"🗑️ Deleted product {product_id} and {len(keys)} image(s)")

    # -----------------------------------------------------
    # Manual ordering
    # -----------------------------------------------------
    def reorder(self, ordered_ids) -> None:
        if not self.manual_order:
            raise ValidationError("Manual ordering is disabled")
        if not isinstance(ordered_ids, list) or not ordered_ids:
            raise ValidationError("orderedIds must be a non-empty array")

        ids: List[int] = []
        for raw in ordered_ids:
            if isinstance(raw, bool):
                raise ValidationError("orderedIds must contain product ids")
            try:
                ids.append(int(raw))
            except (TypeError, ValueError):
                raise ValidationError("orderedIds must contain product ids")
        if len(set(ids)) != len(ids):
            raise ValidationError("orderedIds contains duplicates")

        found = set(self.db.execute(select(Product.id).where(Product.id.in_(ids))).scalars())
        missing = [pid for pid in ids if pid not in found]
        if missing:
            raise NotFoundError(f"Products not found: {missing}")

        try:
            for position, pid in enumerate(ids):
                self.db.execute(sql_update(Product).where(Product.id == pid).values(display_order=position))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("❌ Reorder failed")
            raise PersistenceError("reorder failed") from e

        logger.info(f"Reordered {len(ids)} product(s)")

    # -----------------------------------------------------
    # Helpers
    # -----------------------------------------------------
    def _load(self, product_id: int, for_update: bool = False) -> Product:
        stmt = select(Product).where(Product.id == product_id)
        if for_update:
            stmt = stmt.with_for_update()
        product = self.db.execute(stmt).scalar_one_or_none()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    def _check_price(price: float) -> float:
        if price < 0:
            raise ValidationError("'price' must not be negative")
        return price

    def _check_files(self, files: Sequence[FileBlob]) -> None:
        if len(files) > self.max_files:
            raise ValidationError(f"At most {self.max_files} images can be uploaded at once")
        for blob in files:
            if blob.size == 0:
                raise ValidationError(f"File '{blob.filename}' is empty")
            if blob.size > self.max_file_size:
                raise ValidationError(
                    f"File '{blob.filename}' is too large (max {self.max_file_size // (1024 * 1024)}MB)"
                )
            if not (blob.content_type or "").startswith("image/"):
                raise ValidationError(f"File '{blob.filename}' is not an image")

    def _upload(self, plan: Plan, keep=frozenset()) -> List[str]:
        try:
            return perform_uploads(self.store, plan, self.deadline, self.workers)
        except PartialUploadFailure as e:
            logger.error(
                f"❌ Upload batch failed at {e.failed_at}: {e.cause!r}; "
                f"rolling back {len(e.succeeded_keys)} object(s)"
            )
            # Keys the row already references were overwritten in place, not created
            rollback(self.store, [k for k in e.succeeded_keys if k not in keep])
            raise

    @staticmethod
    def _apply_images(product: Product, plan: Plan) -> None:
        product.images = [
            ProductImage(position=i, url=img.url, storage_key=img.key)
            for i, img in enumerate(plan.final)
        ]
        product.image_main = plan.image_main
