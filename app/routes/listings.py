# Listing endpoints.
# Hosts publish listings with nightly rate, cleaning fee, guest cap and cancellation policy;
# anyone can browse published listings.
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..cancellation import describe_policy, parse_policy
from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services.directory import get_listing
from .auth import require_host

# Router namespace for listing APIs
router = APIRouter()


def _to_read(listing: models.Listing) -> schemas.ListingRead:
    out = schemas.ListingRead.model_validate(listing)
    out.cancellation_policy_summary = describe_policy(parse_policy(listing.cancellation_policy))
    return out


@router.get("/listings", response_model=List[schemas.ListingRead])
def list_listings(db: Session = Depends(get_db)):
    """Published listings, newest first."""
    items = (
        db.query(models.Listing)
        .filter(models.Listing.is_published.is_(True))
        .order_by(models.Listing.id.desc())
        .all()
    )
    return [_to_read(item) for item in items]


@router.get("/listings/mine", response_model=List[schemas.ListingRead])
def list_my_listings(db: Session = Depends(get_db), user: models.User = Depends(require_host)):
    items = (
        db.query(models.Listing)
        .filter(models.Listing.host_id == user.id)
        .order_by(models.Listing.id.desc())
        .all()
    )
    return [_to_read(item) for item in items]


@router.get("/listings/{listing_id}", response_model=schemas.ListingRead)
def read_listing(listing_id: int, db: Session = Depends(get_db)):
    return _to_read(get_listing(db, listing_id))


@router.post(
    "/listings",
    response_model=schemas.ListingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_listing(payload: schemas.ListingCreate, db: Session = Depends(get_db), user: models.User = Depends(require_host)):
    """
    Create a new listing owned by the authenticated host.

    Validation is handled by Pydantic; this endpoint assigns ownership and persists the record.
    """
    obj = models.Listing(host_id=user.id, **payload.model_dump())
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _to_read(obj)
