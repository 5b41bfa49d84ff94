from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.schemas.listing import Listing, ListingCreate, ListingUpdate, ReorderRequest
from app.services.images import ImageUploadError, ImageValidationError, ObjectStorage, resolve_listing_images
from app.services.store import (
    ConflictError,
    ListingNotFound,
    ListingStore,
    ListingValidationError,
    MutationError,
    get_store,
)

router = APIRouter()


def get_object_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage


def _mutation_error(e: Exception) -> HTTPException:
    if isinstance(e, ListingNotFound):
        return HTTPException(status_code=404, detail=f"Listing {e} not found")
    if isinstance(e, (ListingValidationError, ImageValidationError)):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ImageUploadError):
        return HTTPException(status_code=502, detail=f"Image upload failed: {e}")
    return HTTPException(status_code=502, detail=f"Listing storage failed: {e}")


@router.get("/listings", response_model=List[Listing])
async def list_listings(store: ListingStore = Depends(get_store)):
    """Catalog in display order."""
    return store.listings


@router.get("/listings/search", response_model=List[Listing])
async def search_listings(q: str = Query("", max_length=100), store: ListingStore = Depends(get_store)):
    """Search by brand, model, year, fuel, transmission, km or price."""
    return store.search(q)


@router.get("/listings/{listing_id}", response_model=Listing)
async def get_listing(listing_id: str, store: ListingStore = Depends(get_store)):
    try:
        return await store.get(listing_id)
    except ListingNotFound:
        raise HTTPException(status_code=404, detail="Vehículo no encontrado")


@router.post("/listings", response_model=Listing, status_code=201)
async def create_listing(
    payload: ListingCreate,
    store: ListingStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Create a listing. Inline images are uploaded first and replaced by their URLs."""
    if payload.id:
        try:
            await store.get(payload.id)
        except ListingNotFound:
            pass
        else:
            # Checked before any upload
            raise HTTPException(status_code=409, detail=f"listing {payload.id} already exists")
    try:
        data = await resolve_listing_images(payload.model_dump(), storage)
        return await store.create(ListingCreate(**data))
    except (ImageValidationError, ImageUploadError, ListingValidationError, MutationError) as e:
        raise _mutation_error(e)


@router.patch("/listings/{listing_id}", response_model=Listing)
async def update_listing(
    listing_id: str,
    patch: ListingUpdate,
    expected_version: Optional[int] = Query(default=None, description="Reject the update if the stored version differs"),
    store: ListingStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Merge the given fields into a listing; omitted fields keep their stored value."""
    try:
        current = await store.get(listing_id)
        data = await resolve_listing_images(
            patch.model_dump(exclude_unset=True), storage, brand=current.brand, model=current.model
        )
        return await store.update(listing_id, data, expected_version=expected_version)
    except (ListingNotFound, ImageValidationError, ImageUploadError, ListingValidationError, MutationError) as e:
        raise _mutation_error(e)


@router.delete("/listings/{listing_id}")
async def delete_listing(listing_id: str, store: ListingStore = Depends(get_store)):
    try:
        await store.delete(listing_id)
    except (ListingNotFound, MutationError) as e:
        raise _mutation_error(e)
    return {"message": f"Listing {listing_id} deleted"}


@router.put("/listings/order", response_model=List[Listing])
async def reorder_listings(order: ReorderRequest, store: ListingStore = Depends(get_store)):
    """Persist the admin's drag-and-drop order."""
    try:
        return await store.reorder(order.ids)
    except (ListingValidationError, MutationError) as e:
        raise _mutation_error(e)
