"""Actors that can act on marketplace records, and the ownership checks between them."""

from enum import Enum

from marketplace.directory import get_directory
from marketplace.shared.errors import ErrorCode, domain_error


class ActorRole(Enum):
    BUYER = "Buyer"
    SELLER = "Seller"
    ADMIN = "Admin"
    SYSTEM = "System"


SYSTEM_ACTOR_ID = "system"


def ensure_store_staff(actor_id: str, actor_role: str, store_id: str) -> None:
    """Allow the store's own seller, an admin or the system; reject everyone else."""
    role = ActorRole(actor_role)
    if role in (ActorRole.ADMIN, ActorRole.SYSTEM):
        return
    if role == ActorRole.SELLER and get_directory().seller_owns_store(actor_id, store_id):
        return
    raise domain_error(
        ErrorCode.NOT_AUTHORIZED,
        f"{role.value} {actor_id} may not act on store {store_id}",
    )
