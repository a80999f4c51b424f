# Read access to the collaborators the engine depends on: the listing catalog and user accounts.
from __future__ import annotations

from sqlalchemy.orm import Session

from .. import models
from ..errors import AuthorizationError, NotFoundError

# Account types allowed to publish listings, answer booking requests and settle commissions
HOST_TYPES = frozenset({"host", "both"})


def get_listing(db: Session, listing_id: int) -> models.Listing:
    listing = db.get(models.Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing")
    return listing


def get_user_type(db: Session, user_id: int) -> str:
    """Return 'guest', 'host' or 'both' for an account."""
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user.user_type


def require_host_account(db: Session, user_id: int) -> None:
    if get_user_type(db, user_id) not in HOST_TYPES:
        raise AuthorizationError("host account required")
