"""
Order reconciliation engine.

Owns an order's lifecycle: checkout, payment confirmation over two
independent channels (client verify call and gateway webhook), shipping,
cancellation, returns and refunds.

Both confirmation channels funnel into ``_confirm_payment``. It commits the
stock hold for the gateway order (never decrementing twice), then inserts
the order; the unique index on ``gateway_payment_ref`` turns a lost race
into a merge with the winner's row instead of a duplicate order.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from ..config.settings import Settings
from ..errors import (
    AddressNotFound,
    ConcurrentModification,
    GatewayError,
    InsufficientStock,
    InvalidSignature,
    InvalidTransition,
    OrderNotFound,
    OrderValidationError,
    PaymentOrderNotFound,
    ReturnNotFound,
)
from ..models.hold import StockHold
from ..models.order import (
    Cancellation,
    CodCollectionStatus,
    ConfirmationSource,
    LineItem,
    OrderDocument,
    PaymentMethod,
    PaymentStatus,
    PickupAgent,
    RefundStatus,
    ReturnRequest,
    ReturnStatus,
    ShippingStatus,
    RETURN_TRANSITIONS,
    SHIPPING_TRANSITIONS,
)
from ..schemas.order import GatewayOrderResponse
from ..schemas.payment import PaymentEntity, WebhookEvent
from ..utils.serializers import to_object_id, utcnow
from .addresses import AddressResolver
from .gateway import RazorpayGateway, from_minor_units, to_minor_units
from .holds import StockHoldRegistry
from .inventory import InventoryLedger
from .notifications import EmailNotifier

logger = logging.getLogger(__name__)

PAID_EVENTS = ("payment.captured", "order.paid")
REFUND_EVENT_STATUS = {
    "refund.created": RefundStatus.REFUND_PROCESSING.value,
    "refund.processed": RefundStatus.REFUND_COMPLETED.value,
    "refund.failed": RefundStatus.REFUND_FAILED.value,
}


class OrderService:
    """
    Places orders and drives them through payment, shipping and returns.

    Stateless apart from its injected collaborators; every invariant is
    enforced by conditional writes in MongoDB.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        gateway: RazorpayGateway,
        notifier: EmailNotifier,
        settings: Settings,
    ):
        self.orders = db.orders
        self.gateway = gateway
        self.notifier = notifier
        self.settings = settings
        self.inventory = InventoryLedger(db)
        self.addresses = AddressResolver(db)
        self.holds = StockHoldRegistry(db, self.inventory, ttl_minutes=settings.hold_ttl_minutes)

    # Checkout

    async def place_order(
        self,
        user_id: str,
        line_items: Sequence[LineItem],
        address_id: str,
        amount: float,
        payment_method: Union[PaymentMethod, str],
    ) -> Union[OrderDocument, GatewayOrderResponse]:
        """
        Reserve stock and either create a COD order or open an online checkout.

        Raises:
            OrderValidationError: Malformed input; nothing is touched
            ProductNotFound, VariantNotFound, InsufficientStock: Stock could not be reserved
            AddressNotFound: Address missing; the reservation is restored
            GatewayError: Gateway order creation failed; the reservation is restored
        """
        to_object_id(user_id, "user")
        payment_method = self._validate_checkout(line_items, address_id, amount, payment_method)

        reserved = await self.inventory.reserve_stock(line_items)
        try:
            address = await self.addresses.resolve_snapshot(address_id, user_id)
        except AddressNotFound:
            await self._compensate(reserved, "address lookup failed")
            raise

        if payment_method == PaymentMethod.ONLINE:
            return await self._open_online_checkout(user_id, address_id, address, reserved, amount)

        now = utcnow()
        order = OrderDocument(
            user_id=user_id,
            address_id=address_id,
            address=address,
            line_items=reserved,
            amount=amount,
            payment_method=PaymentMethod.COD,
            payment_status=PaymentStatus.PENDING,
            cod_collection_status=CodCollectionStatus.NOT_COLLECTED,
            shipping_status=ShippingStatus.PROCESSING,
            shipping_timestamps={ShippingStatus.PROCESSING.value: now},
            created_at=now,
            updated_at=now,
        )
        try:
            result = await self.orders.insert_one(order.to_mongo())
        except Exception:
            await self._compensate(reserved, "COD order insert failed")
            raise

        order = order.model_copy(update={"id": str(result.inserted_id)})
        logger.info(f"COD order created: {order.id} for user {user_id}")
        self._notify("order.cod_placed", order)
        return order

    def _validate_checkout(
        self,
        line_items: Sequence[LineItem],
        address_id: str,
        amount: float,
        payment_method: Union[PaymentMethod, str],
    ) -> PaymentMethod:
        if not line_items:
            raise OrderValidationError("No products selected")
        if len(line_items) > self.settings.max_order_items:
            raise OrderValidationError(f"An order can contain at most {self.settings.max_order_items} items")
        for item in line_items:
            if item.quantity < 1 or item.quantity > self.settings.max_item_quantity or not item.size.strip():
                raise OrderValidationError("Invalid product, quantity, or size in product list")
        if not ObjectId.is_valid(address_id):
            raise OrderValidationError("Invalid address")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount) or amount <= 0:
            raise OrderValidationError("Invalid amount")
        try:
            return PaymentMethod(payment_method)
        except ValueError:
            raise OrderValidationError("Invalid payment method")

    async def _open_online_checkout(
        self,
        user_id: str,
        address_id: str,
        address,
        reserved: List[LineItem],
        amount: float,
    ) -> GatewayOrderResponse:
        now = utcnow()
        amount_minor = to_minor_units(amount)
        currency = self.settings.currency
        receipt = f"receipt_{ObjectId()}"

        try:
            gateway_order = await self.gateway.create_gateway_order(
                amount_minor,
                currency,
                receipt,
                {"user_id": user_id, "address_id": address_id, "receipt": receipt},
            )
        except Exception:
            await self._compensate(reserved, "gateway order creation failed")
            raise

        hold = StockHold(
            gateway_order_ref=gateway_order.gateway_order_ref,
            user_id=user_id,
            address_id=address_id,
            address=address,
            line_items=reserved,
            amount=amount,
            amount_minor=amount_minor,
            currency=currency,
            receipt=receipt,
            created_at=now,
            expires_at=self.holds.expiry_for(now),
        )
        try:
            hold = await self.holds.create_hold(hold)
        except Exception:
            await self._compensate(reserved, "stock hold insert failed")
            raise

        logger.info(
            f"Gateway order {hold.gateway_order_ref} opened for user {user_id} "
            f"({amount_minor} {currency}), stock held until {hold.expires_at.isoformat()}"
        )
        return GatewayOrderResponse(
            gateway_order_ref=hold.gateway_order_ref,
            amount_minor=amount_minor,
            currency=currency,
            receipt=receipt,
            key=self.gateway.key_id,
            expires_at=hold.expires_at,
        )

    # Payment confirmation

    async def confirm_client_payment(
        self,
        gateway_order_ref: str,
        gateway_payment_ref: str,
        signature: str,
        user_id: Optional[str] = None,
        address_id: Optional[str] = None,
        line_items: Optional[Sequence[LineItem]] = None,
        amount: Optional[float] = None,
    ) -> OrderDocument:
        """
        Confirm a payment reported by the storefront after checkout.

        The user, address, lines and amount come from the hold stored at
        checkout; the client's copies are only compared and logged.

        Raises:
            InvalidSignature: Signature mismatch; nothing is read or written
            PaymentOrderNotFound: No checkout exists for the gateway order
            InsufficientStock: The hold lapsed and the stock has since sold
        """
        if not self.gateway.verify_client_signature(gateway_order_ref, gateway_payment_ref, signature):
            logger.warning(f"Rejected client payment confirmation for gateway order {gateway_order_ref}")
            raise InvalidSignature()

        hold = await self.holds.get(gateway_order_ref)
        if hold is None:
            raise PaymentOrderNotFound(gateway_order_ref)

        self._compare_client_claims(hold, user_id, address_id, line_items, amount)
        order, _ = await self._confirm_payment(hold, gateway_payment_ref, ConfirmationSource.CLIENT, hold.amount)
        return order

    def _compare_client_claims(
        self,
        hold: StockHold,
        user_id: Optional[str],
        address_id: Optional[str],
        line_items: Optional[Sequence[LineItem]],
        amount: Optional[float],
    ) -> None:
        mismatches = []
        if user_id is not None and user_id != hold.user_id:
            mismatches.append("user_id")
        if address_id is not None and address_id != hold.address_id:
            mismatches.append("address_id")
        if amount is not None and to_minor_units(amount) != hold.amount_minor:
            mismatches.append("amount")
        if line_items is not None:
            claimed = sorted((i.product_id, i.size, i.quantity) for i in line_items)
            held = sorted((i.product_id, i.size, i.quantity) for i in hold.line_items)
            if claimed != held:
                mismatches.append("line_items")
        if mismatches:
            logger.warning(
                f"Client confirmation for {hold.gateway_order_ref} disagrees with checkout on "
                f"{', '.join(mismatches)}; using checkout values"
            )

    async def confirm_webhook_payment(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Handle a gateway webhook delivered as the raw request body.

        Raises:
            InvalidSignature: Signature mismatch; nothing is parsed or written
            OrderValidationError: Signed but unparseable payload
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Rejected webhook delivery: signature mismatch")
            raise InvalidSignature()

        try:
            event = WebhookEvent.model_validate_json(raw_body)
        except ValidationError as e:
            logger.error(f"Signed webhook payload failed validation: {e}")
            raise OrderValidationError("Malformed webhook payload")

        if event.event in PAID_EVENTS:
            await self._on_payment_captured(self._payment_entity(event))
        elif event.event == "payment.failed":
            await self._on_payment_failed(self._payment_entity(event))
        elif event.event in REFUND_EVENT_STATUS:
            await self._on_refund_event(event)
        else:
            logger.info(f"Ignoring webhook event {event.event}")

        return {"received": True}

    def _payment_entity(self, event: WebhookEvent) -> PaymentEntity:
        if event.payload.payment is None:
            raise OrderValidationError("Malformed webhook payload")
        return event.payload.payment.entity

    async def _on_payment_captured(self, payment: PaymentEntity) -> None:
        existing = await self._find_by_payment_ref(payment.id)
        if existing is not None:
            await self._merge_confirmation(existing, ConfirmationSource.WEBHOOK)
            return

        if not payment.order_id:
            logger.error(f"Webhook payment {payment.id} carries no gateway order reference")
            return
        hold = await self.holds.get(payment.order_id)
        if hold is None:
            logger.error(f"Webhook payment {payment.id} references unknown gateway order {payment.order_id}")
            return
        if payment.amount != hold.amount_minor:
            logger.error(
                f"Webhook payment {payment.id} amount {payment.amount} differs from checkout "
                f"amount {hold.amount_minor} for {hold.gateway_order_ref}"
            )

        try:
            await self._confirm_payment(
                hold, payment.id, ConfirmationSource.WEBHOOK, from_minor_units(payment.amount)
            )
        except InsufficientStock:
            # Already reported to operators; acknowledge so the gateway stops retrying
            return

    async def _on_payment_failed(self, payment: PaymentEntity) -> None:
        result = await self.orders.update_one(
            {"gateway_payment_ref": payment.id, "payment_status": PaymentStatus.PENDING.value},
            {"$set": {"payment_status": PaymentStatus.FAILED.value, "updated_at": utcnow()}},
        )
        if result.modified_count:
            logger.info(f"Payment {payment.id} marked failed")
        else:
            logger.info(f"Payment {payment.id} failed for gateway order {payment.order_id}; no order to update")

    async def _on_refund_event(self, event: WebhookEvent) -> None:
        if event.payload.refund is None:
            raise OrderValidationError("Malformed webhook payload")
        refund = event.payload.refund.entity
        status = REFUND_EVENT_STATUS[event.event]

        order = await self._find_by_payment_ref(refund.payment_id)
        if order is None:
            logger.warning(f"Refund {refund.id} references unknown payment {refund.payment_id}")
            return

        now = utcnow()
        update: Dict[str, Any] = {
            "refund_status": status,
            f"refund_timestamps.{status}": now,
            "refund_ref": refund.id,
            "updated_at": now,
        }
        query: Dict[str, Any] = {"_id": ObjectId(order.id)}
        if status == RefundStatus.REFUND_PROCESSING.value:
            # Never step back from a terminal refund state
            query["refund_status"] = {"$nin": [
                RefundStatus.REFUND_COMPLETED.value, RefundStatus.REFUND_FAILED.value
            ]}
        elif status == RefundStatus.REFUND_FAILED.value:
            # A completed refund is final; late or replayed failures are ignored
            query["refund_status"] = {"$ne": RefundStatus.REFUND_COMPLETED.value}
        if status == RefundStatus.REFUND_COMPLETED.value and refund.amount >= to_minor_units(order.amount):
            update["payment_status"] = PaymentStatus.REFUNDED.value

        result = await self.orders.update_one(query, {"$set": update})
        if result.matched_count:
            logger.info(f"Refund {refund.id} for order {order.id} is now {status}")
        else:
            logger.info(f"Ignored {event.event} for order {order.id}; refund already {order.refund_status}")

    async def _confirm_payment(
        self,
        hold: StockHold,
        gateway_payment_ref: str,
        source: ConfirmationSource,
        amount: float,
    ) -> Tuple[OrderDocument, bool]:
        """Create the paid order for a hold, or merge into the existing one."""
        existing = await self._find_by_payment_ref(gateway_payment_ref)
        if existing is not None:
            return await self._merge_confirmation(existing, source), False

        try:
            await self.holds.commit(hold)
        except InsufficientStock:
            logger.error(
                f"Payment {gateway_payment_ref} captured for {hold.gateway_order_ref} but stock "
                f"could not be committed; refund required"
            )
            self.notifier.notify("payment.unfulfillable", {
                "user_id": hold.user_id,
                "amount": hold.amount,
                "payment_method": PaymentMethod.ONLINE.value,
                "payment_status": PaymentStatus.PAID.value,
                "gateway_order_ref": hold.gateway_order_ref,
                "gateway_payment_ref": gateway_payment_ref,
                "address": hold.address.model_dump(),
                "line_items": [item.model_dump() for item in hold.line_items],
            })
            raise

        now = utcnow()
        order = OrderDocument(
            user_id=hold.user_id,
            address_id=hold.address_id,
            address=hold.address,
            line_items=hold.line_items,
            amount=amount,
            payment_method=PaymentMethod.ONLINE,
            payment_status=PaymentStatus.PAID,
            gateway_order_ref=hold.gateway_order_ref,
            gateway_payment_ref=gateway_payment_ref,
            confirmation_source=source,
            shipping_status=ShippingStatus.PROCESSING,
            shipping_timestamps={ShippingStatus.PROCESSING.value: now},
            created_at=now,
            updated_at=now,
        )
        try:
            result = await self.orders.insert_one(order.to_mongo())
        except DuplicateKeyError:
            # The other confirmation channel inserted first
            doc = await self.orders.find_one({"$or": [
                {"gateway_payment_ref": gateway_payment_ref},
                {"gateway_order_ref": hold.gateway_order_ref},
            ]})
            if doc is None:
                raise
            return await self._merge_confirmation(OrderDocument.from_mongo(doc), source), False

        order = order.model_copy(update={"id": str(result.inserted_id)})
        logger.info(
            f"Online order created: {order.id} for payment {gateway_payment_ref} (confirmed by {order.confirmation_source})"
        )
        self._notify("order.online_paid", order)
        return order, True

    async def _merge_confirmation(self, existing: OrderDocument, source: ConfirmationSource) -> OrderDocument:
        """
        Fold a further confirmation into an existing order.

        A replay from the same channel changes nothing; a confirmation from
        the other channel marks the order as confirmed by both.
        """
        source = ConfirmationSource(source).value
        order_oid = ObjectId(existing.id)
        now = utcnow()

        await self.orders.update_one(
            {
                "_id": order_oid,
                "payment_status": {"$in": [PaymentStatus.PENDING.value, PaymentStatus.FAILED.value]},
            },
            {"$set": {"payment_status": PaymentStatus.PAID.value, "updated_at": now}},
        )
        result = await self.orders.update_one(
            {"_id": order_oid, "confirmation_source": {"$nin": [source, ConfirmationSource.BOTH.value]}},
            {"$set": {"confirmation_source": ConfirmationSource.BOTH.value, "updated_at": now}},
        )
        if result.modified_count:
            logger.info(f"Order {existing.id} confirmed by both client and webhook")
        else:
            logger.info(f"Duplicate {source} confirmation for order {existing.id} ignored")

        return await self._get_order(existing.id)

    # Fulfilment

    async def update_shipping_status(
        self,
        order_id: str,
        next_status: Union[ShippingStatus, str],
        reason: Optional[str] = None,
    ) -> OrderDocument:
        """
        Move an order to the next shipping state.

        Each state's timestamp is written once; cancelling restores the
        order's stock.

        Raises:
            OrderNotFound: No such order
            InvalidTransition: The move is not allowed from the current state
        """
        order = await self._get_order(order_id)
        try:
            next_value = ShippingStatus(next_status).value
        except ValueError:
            raise OrderValidationError(f"Invalid shipping status: {next_status}")

        current = order.shipping_status
        if next_value not in SHIPPING_TRANSITIONS[current]:
            raise InvalidTransition("shipping status", current, next_value)

        now = utcnow()
        update: Dict[str, Any] = {
            "shipping_status": next_value,
            f"shipping_timestamps.{next_value}": now,
            "updated_at": now,
        }
        if next_value == ShippingStatus.CANCELLED.value:
            update["cancellation"] = Cancellation(reason=reason or "", timestamp=now).model_dump()

        result = await self.orders.update_one(
            {
                "_id": ObjectId(order.id),
                "shipping_status": current,
                f"shipping_timestamps.{next_value}": {"$exists": False},
            },
            {"$set": update},
        )
        if result.modified_count != 1:
            raise ConcurrentModification(f"Order {order.id}")

        logger.info(f"Order {order.id} shipping status: {current} -> {next_value}")
        if next_value == ShippingStatus.CANCELLED.value:
            await self._compensate(order.line_items, f"cancellation of order {order.id}")

        return await self._get_order(order.id)

    async def cancel_order(self, order_id: str, reason: str = "") -> OrderDocument:
        return await self.update_shipping_status(order_id, ShippingStatus.CANCELLED, reason)

    async def mark_cod_collected(self, order_id: str) -> OrderDocument:
        order = await self._get_order(order_id)
        if order.payment_method != PaymentMethod.COD.value:
            raise OrderValidationError("Only cash-on-delivery orders have a collection status")

        now = utcnow()
        result = await self.orders.update_one(
            {
                "_id": ObjectId(order.id),
                "cod_collection_status": CodCollectionStatus.NOT_COLLECTED.value,
                "shipping_status": {"$ne": ShippingStatus.CANCELLED.value},
            },
            {"$set": {
                "cod_collection_status": CodCollectionStatus.COLLECTED.value,
                "payment_status": PaymentStatus.PAID.value,
                "updated_at": now,
            }},
        )
        if result.modified_count != 1:
            raise InvalidTransition(
                "COD collection status", order.cod_collection_status, CodCollectionStatus.COLLECTED.value
            )
        return await self._get_order(order.id)

    # Returns

    async def request_return(
        self,
        order_id: str,
        product_id: str,
        size: str,
        quantity: int,
        reason: Optional[str] = None,
    ) -> ReturnRequest:
        """
        Open a return for one line of a delivered order.

        Raises:
            OrderNotFound: No such order
            OrderValidationError: Not delivered, no such line, or too many units
        """
        order = await self._get_order(order_id)
        if order.shipping_status != ShippingStatus.DELIVERED.value:
            raise OrderValidationError("Returns can only be requested for delivered orders")
        if quantity < 1:
            raise OrderValidationError("Return quantity must be at least 1")

        purchased = sum(
            item.quantity for item in order.line_items
            if item.product_id == product_id and item.size == size
        )
        if not purchased:
            raise OrderValidationError(f"Order has no line for product {product_id} in size {size}")
        already_returned = sum(
            ret.quantity for ret in order.returns
            if ret.product_id == product_id and ret.size == size and ret.status != ReturnStatus.REJECTED.value
        )
        if quantity > purchased - already_returned:
            raise OrderValidationError(
                f"Only {purchased - already_returned} unit(s) of this line can still be returned"
            )

        now = utcnow()
        ret = ReturnRequest(
            product_id=product_id,
            size=size,
            quantity=quantity,
            reason=reason,
            status=ReturnStatus.REQUESTED,
            timestamps={ReturnStatus.REQUESTED.value: now},
        )
        result = await self.orders.update_one(
            {
                "_id": ObjectId(order.id),
                "shipping_status": ShippingStatus.DELIVERED.value,
                "returns": {"$size": len(order.returns)},
            },
            {"$push": {"returns": ret.model_dump(exclude_none=True)}, "$set": {"updated_at": now}},
        )
        if result.modified_count != 1:
            raise ConcurrentModification(f"Order {order.id}")

        logger.info(f"Return {ret.return_id} requested on order {order.id}")
        return ret

    async def advance_return(
        self,
        return_id: str,
        next_status: Union[ReturnStatus, str],
        pickup_agent: Optional[PickupAgent] = None,
    ) -> ReturnRequest:
        """
        Move a return along requested -> pickup_scheduled -> picked_up ->
        returned_to_warehouse, or reject it before pickup.
        """
        order, ret = await self._get_return(return_id)
        try:
            next_value = ReturnStatus(next_status).value
        except ValueError:
            raise OrderValidationError(f"Invalid return status: {next_status}")

        if next_value not in RETURN_TRANSITIONS[ret.status]:
            raise InvalidTransition("return status", ret.status, next_value)

        now = utcnow()
        update: Dict[str, Any] = {
            "returns.$.status": next_value,
            "returns.$.timestamps": {**ret.timestamps, next_value: now},
            "updated_at": now,
        }
        if pickup_agent is not None and next_value == ReturnStatus.PICKUP_SCHEDULED.value:
            update["returns.$.pickup_agent"] = pickup_agent.model_dump(exclude_none=True)

        result = await self.orders.update_one(
            {
                "_id": ObjectId(order.id),
                "returns": {"$elemMatch": {"return_id": return_id, "status": ret.status}},
            },
            {"$set": update},
        )
        if result.modified_count != 1:
            raise ConcurrentModification(f"Return {return_id}")

        logger.info(f"Return {return_id} on order {order.id}: {ret.status} -> {next_value}")
        _, updated = await self._get_return(return_id)
        return updated

    async def verify_return(self, return_id: str) -> ReturnRequest:
        """Mark a return's goods as inspected once they are back in the warehouse."""
        order, ret = await self._get_return(return_id)
        if ret.status != ReturnStatus.RETURNED_TO_WAREHOUSE.value:
            raise OrderValidationError("Only returns received at the warehouse can be verified")
        if ret.verified:
            return ret

        await self.orders.update_one(
            {"_id": ObjectId(order.id), "returns.return_id": return_id},
            {"$set": {"returns.$.verified": True, "updated_at": utcnow()}},
        )
        _, updated = await self._get_return(return_id)
        return updated

    # Refunds

    async def initiate_refund(self, order_id: str, amount: Optional[float] = None) -> OrderDocument:
        """
        Refund a paid online order through the gateway.

        Raises:
            OrderValidationError: Not a paid online order, or amount too large
            InvalidTransition: A refund is already under way or done
            GatewayError: The gateway refused; the order is left refund_failed
        """
        order = await self._get_order(order_id)
        if (
            order.payment_method != PaymentMethod.ONLINE.value
            or order.payment_status != PaymentStatus.PAID.value
            or not order.gateway_payment_ref
        ):
            raise OrderValidationError("Only paid online orders can be refunded")

        refund_amount = order.amount if amount is None else amount
        if refund_amount <= 0 or to_minor_units(refund_amount) > to_minor_units(order.amount):
            raise OrderValidationError("Refund amount must be positive and not exceed the order amount")

        order_oid = ObjectId(order.id)
        now = utcnow()
        claimed = await self.orders.update_one(
            {
                "_id": order_oid,
                "refund_status": {"$in": [RefundStatus.NOT_APPLICABLE.value, RefundStatus.REFUND_FAILED.value]},
            },
            {"$set": {
                "refund_status": RefundStatus.REFUND_APPLIED.value,
                f"refund_timestamps.{RefundStatus.REFUND_APPLIED.value}": now,
                "updated_at": now,
            }},
        )
        if claimed.modified_count != 1:
            raise InvalidTransition("refund status", order.refund_status, RefundStatus.REFUND_APPLIED.value)

        try:
            refund = await self.gateway.create_refund(
                order.gateway_payment_ref, to_minor_units(refund_amount), {"order_id": order.id}
            )
        except GatewayError:
            failed_at = utcnow()
            await self.orders.update_one(
                {"_id": order_oid, "refund_status": RefundStatus.REFUND_APPLIED.value},
                {"$set": {
                    "refund_status": RefundStatus.REFUND_FAILED.value,
                    f"refund_timestamps.{RefundStatus.REFUND_FAILED.value}": failed_at,
                    "updated_at": failed_at,
                }},
            )
            raise

        processing_at = utcnow()
        await self.orders.update_one(
            {"_id": order_oid, "refund_status": RefundStatus.REFUND_APPLIED.value},
            {"$set": {
                "refund_status": RefundStatus.REFUND_PROCESSING.value,
                f"refund_timestamps.{RefundStatus.REFUND_PROCESSING.value}": processing_at,
                "refund_ref": refund["id"],
                "updated_at": processing_at,
            }},
        )
        logger.info(f"Refund {refund['id']} initiated for order {order.id} ({refund_amount})")
        return await self._get_order(order.id)

    # Helpers

    async def _get_order(self, order_id: str) -> OrderDocument:
        doc = await self.orders.find_one({"_id": to_object_id(order_id, "order")})
        if not doc:
            raise OrderNotFound(order_id)
        return OrderDocument.from_mongo(doc)

    async def _get_return(self, return_id: str) -> Tuple[OrderDocument, ReturnRequest]:
        doc = await self.orders.find_one({"returns.return_id": return_id})
        if not doc:
            raise ReturnNotFound(return_id)
        order = OrderDocument.from_mongo(doc)
        return order, order.find_return(return_id)

    async def _find_by_payment_ref(self, gateway_payment_ref: str) -> Optional[OrderDocument]:
        doc = await self.orders.find_one({"gateway_payment_ref": gateway_payment_ref})
        return OrderDocument.from_mongo(doc) if doc else None

    async def _compensate(self, line_items: Sequence[LineItem], why: str) -> None:
        if not await self.inventory.restore_stock(line_items):
            logger.warning(f"Stock was not fully restored after {why}")

    def _notify(self, event: str, order: OrderDocument) -> None:
        self.notifier.notify(event, order.model_dump(mode="json"))
