"""Admin lifecycle commands for dropship orders.

Used when a supplier reports progress outside its integration (phone,
email, portal). Every command goes through the same state machine as
webhooks do.
"""

from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.dropship_order import DropshipOrder


@dropship.command(part_of="DropshipOrder")
class ConfirmDropshipOrder:
    dropship_order_id = Identifier(required=True)
    supplier_order_id = String(max_length=255)


@dropship.command(part_of="DropshipOrder")
class MarkDropshipOrderProcessing:
    dropship_order_id = Identifier(required=True)


@dropship.command(part_of="DropshipOrder")
class ShipDropshipOrder:
    dropship_order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=255)
    carrier = String(max_length=100)
    estimated_delivery = DateTime()


@dropship.command(part_of="DropshipOrder")
class DeliverDropshipOrder:
    dropship_order_id = Identifier(required=True)


@dropship.command(part_of="DropshipOrder")
class CancelDropshipOrder:
    dropship_order_id = Identifier(required=True)
    reason = String(max_length=500, default="Cancelled by admin")


@dropship.command(part_of="DropshipOrder")
class RefundDropshipOrder:
    dropship_order_id = Identifier(required=True)
    reason = String(max_length=500)


@dropship.command(part_of="DropshipOrder")
class HoldDropshipOrder:
    dropship_order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@dropship.command_handler(part_of=DropshipOrder)
class DropshipLifecycleHandler:
    def _apply(self, dropship_order_id, change) -> str:
        repo = current_domain.repository_for(DropshipOrder)
        dropship_order = repo.get(dropship_order_id)
        change(dropship_order)
        repo.add(dropship_order)
        return dropship_order.status

    @handle(ConfirmDropshipOrder)
    def confirm(self, command: ConfirmDropshipOrder) -> str:
        return self._apply(command.dropship_order_id, lambda do: do.mark_confirmed(command.supplier_order_id))

    @handle(MarkDropshipOrderProcessing)
    def mark_processing(self, command: MarkDropshipOrderProcessing) -> str:
        return self._apply(command.dropship_order_id, lambda do: do.mark_processing())

    @handle(ShipDropshipOrder)
    def ship(self, command: ShipDropshipOrder) -> str:
        return self._apply(
            command.dropship_order_id,
            lambda do: do.mark_shipped(command.tracking_number, command.carrier, command.estimated_delivery),
        )

    @handle(DeliverDropshipOrder)
    def deliver(self, command: DeliverDropshipOrder) -> str:
        return self._apply(command.dropship_order_id, lambda do: do.mark_delivered())

    @handle(CancelDropshipOrder)
    def cancel(self, command: CancelDropshipOrder) -> str:
        return self._apply(command.dropship_order_id, lambda do: do.cancel(command.reason))

    @handle(RefundDropshipOrder)
    def refund(self, command: RefundDropshipOrder) -> str:
        return self._apply(command.dropship_order_id, lambda do: do.refund(command.reason))

    @handle(HoldDropshipOrder)
    def hold(self, command: HoldDropshipOrder) -> str:
        return self._apply(command.dropship_order_id, lambda do: do.hold(command.reason))
