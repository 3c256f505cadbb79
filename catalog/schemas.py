from pydantic import BaseModel
from typing import Optional, List

class ProductOut(BaseModel):
    id: int
    name: str
    description: str = ""
    price: float
    discount: float
    display_order: int = 0
    image_main: Optional[str] = None
    images: List[str] = []
    # Only filled in the fixed-slot layout
    image_thumb1: Optional[str] = None
    image_thumb2: Optional[str] = None
    image_thumb3: Optional[str] = None

    @classmethod
    def from_product(cls, product, fixed_slots: bool = False) -> "ProductOut":
        urls = product.image_urls
        data = dict(
            id=product.id,
            name=product.name,
            description=product.description or "",
            price=product.price,
            discount=product.discount,
            display_order=product.display_order or 0,
            image_main=product.image_main,
            images=urls,
        )
        if fixed_slots:
            slots = (urls + [None] * 4)[:4]
            data.update(image_thumb1=slots[1], image_thumb2=slots[2], image_thumb3=slots[3])
        return cls(**data)

    def to_json(self) -> dict:
        # exclude_unset keeps the thumb fields out of the variable layout
        return self.model_dump(exclude_unset=True)

class CreateResponse(BaseModel):
    success: bool = True
    id: int
    image_main: Optional[str] = None
    images: List[str]
    dropped: List[str] = []

class UpdateResponse(BaseModel):
    success: bool = True
    image_main: Optional[str] = None
    images: List[str]
    dropped: List[str] = []

class SuccessResponse(BaseModel):
    success: bool = True

class VisitStat(BaseModel):
    month: str
    count: int
