"""Order-level status updates — command and handler.

The order's status is managed on its own by admins and the system. It is
not rolled up from the sub-orders.
"""

from protean import handle
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.order.status import OrderStatus
from marketplace.shared.actors import ActorRole
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import ErrorCode, check_revision, domain_error


@marketplace.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    target_status = String(required=True, choices=OrderStatus)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    override = Boolean(default=False)
    expected_revision = Integer()
    occurred_at = DateTime()


@marketplace.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command: UpdateOrderStatus):
        if command.actor_role not in (ActorRole.ADMIN.value, ActorRole.SYSTEM.value):
            raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only admins may change an order's status")
        if command.override and command.actor_role != ActorRole.ADMIN.value:
            raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only admins may override the fulfillment flow")

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        check_revision(order, command.expected_revision)

        order.transition_to(
            OrderStatus(command.target_status),
            override=bool(command.override),
            at=as_utc(command.occurred_at),
        )
        repo.add(order)
        return order.revision
