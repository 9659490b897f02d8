"""Item-level fulfillment transitions — command and handler."""

from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.sub_order import ItemStatus, SellerSubOrder
from marketplace.shared.actors import ActorRole, ensure_store_staff
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import check_revision


@marketplace.command(part_of="SellerSubOrder")
class TransitionItemStatus:
    """Move a single sub-order item through New/Preparing/Shipped/Delivered/Cancelled."""

    sub_order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    target_status = String(required=True, choices=ItemStatus)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    expected_revision = Integer()
    occurred_at = DateTime()


@marketplace.command_handler(part_of=SellerSubOrder)
class ItemFulfillmentHandler:
    @handle(TransitionItemStatus)
    def transition_item(self, command: TransitionItemStatus):
        repo = current_domain.repository_for(SellerSubOrder)
        sub_order = repo.get(command.sub_order_id)

        ensure_store_staff(command.actor_id, command.actor_role, sub_order.store_id)
        check_revision(sub_order, command.expected_revision)

        sub_order.transition_item(
            command.item_id,
            ItemStatus(command.target_status),
            at=as_utc(command.occurred_at),
        )
        repo.add(sub_order)
        return sub_order.revision
