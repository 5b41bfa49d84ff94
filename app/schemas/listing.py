from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

EXTERIOR_SLOTS = 5
INTERIOR_SLOTS = 9

# Fields that carry an image reference (URL or inline data: payload)
IMAGE_FIELDS = ("image", "logo")
GALLERY_FIELDS = {"gallery_exterior": EXTERIOR_SLOTS, "gallery_interior": INTERIOR_SLOTS}


def pad_gallery(images: Optional[List[Optional[str]]], slots: int) -> List[Optional[str]]:
    """Return a fixed-size gallery where empty slots are explicit None markers."""
    images = [img or None for img in (images or [])]
    if len(images) > slots:
        raise ValueError(f"at most {slots} images allowed, got {len(images)}")
    return images + [None] * (slots - len(images))


class ListingFields(BaseModel):
    """Editable vehicle attributes shared by create and read schemas."""
    brand: str = Field(description="Manufacturer, e.g. 'Kia'")
    model: str = Field(description="Model name, e.g. 'Sportage'")
    year: Optional[int] = Field(default=None, description="Registration year, e.g. 2020")
    fuel: Optional[str] = Field(default=None, description="'Diesel', 'Gasolina', 'Híbrido', 'Eléctrico'")
    transmission: Optional[str] = Field(default=None, description="'Manual' or 'Auto'")
    cv: Optional[str] = Field(default=None, description="Horsepower, e.g. '150'")
    price: Optional[str] = Field(default=None, description="Asking price, e.g. '28500€'")
    km: Optional[str] = Field(default=None, description="Distance driven, e.g. '85.000 km'")
    description: Optional[str] = None
    sold: bool = False
    image: Optional[str] = Field(default=None, description="Main image URL (or inline data: payload before upload)")
    logo: Optional[str] = None
    logo_class: Optional[str] = Field(default=None, description="'wide' for wide brand logos")
    logo_size: Optional[int] = Field(default=None, description="Logo display scale in percent")
    logo_margin: Optional[int] = Field(default=None, description="Logo bottom margin in px")
    gallery_exterior: List[Optional[str]] = Field(default_factory=lambda: [None] * EXTERIOR_SLOTS)
    gallery_interior: List[Optional[str]] = Field(default_factory=lambda: [None] * INTERIOR_SLOTS)

    @field_validator("gallery_exterior", mode="before")
    @classmethod
    def _pad_exterior(cls, value):
        return pad_gallery(value, EXTERIOR_SLOTS)

    @field_validator("gallery_interior", mode="before")
    @classmethod
    def _pad_interior(cls, value):
        return pad_gallery(value, INTERIOR_SLOTS)


class ListingCreate(ListingFields):
    """Admin submission. The id is derived from brand/model/time when omitted."""
    id: Optional[str] = None


class ListingUpdate(BaseModel):
    """Partial update: only the fields present are merged into the document."""
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    fuel: Optional[str] = None
    transmission: Optional[str] = None
    cv: Optional[str] = None
    price: Optional[str] = None
    km: Optional[str] = None
    description: Optional[str] = None
    sold: Optional[bool] = None
    image: Optional[str] = None
    logo: Optional[str] = None
    logo_class: Optional[str] = None
    logo_size: Optional[int] = None
    logo_margin: Optional[int] = None
    gallery_exterior: Optional[List[Optional[str]]] = None
    gallery_interior: Optional[List[Optional[str]]] = None

    @field_validator("brand", "model")
    @classmethod
    def _required_text(cls, value, info):
        if value is None or not value.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return value

    @field_validator("sold")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("sold cannot be null")
        return value

    # An explicit null clears every slot of a gallery
    @field_validator("gallery_exterior", mode="before")
    @classmethod
    def _pad_exterior(cls, value):
        return pad_gallery(value, EXTERIOR_SLOTS)

    @field_validator("gallery_interior", mode="before")
    @classmethod
    def _pad_interior(cls, value):
        return pad_gallery(value, INTERIOR_SLOTS)


class Listing(ListingFields):
    """A persisted listing as seen by the catalog, admin panel and dispatcher."""
    id: str
    position: int = 0
    version: int = 1

    model_config = {"from_attributes": True}


class ReorderRequest(BaseModel):
    ids: List[str] = Field(description="Every listing id, in the desired display order")
