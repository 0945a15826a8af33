"""
Cart-to-order checkout
Expands submitted checkout groups into one order per (date, meal type, address).

Sequencing:
1. every referenced address is resolved up front; one bad address rejects the batch
2. each group runs the order checks on its own; failures are collected per group
3. each passing group is persisted and reserves capacity in its own transaction
Overall success means at least one order was created.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from ..core.exceptions import BaseApplicationError, InvalidAddressError, ValidationError
from ..models.order import Order, OrderDraft, OrderStatus, PaymentStatus
from .cart_service import CartService
from .order_service import OrderService

logger = structlog.get_logger(__name__)


@dataclass
class CheckoutResult:
    orders: List[Order] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    # 1-based positions of the groups that produced an order
    created_groups: List[int] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.orders)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "orders": [o.model_dump(mode="json") for o in self.orders],
            "errors": self.errors,
            "total_orders": len(self.orders),
        }


class CheckoutService:
    def __init__(self, orders: OrderService, cart: CartService):
        self.orders = orders
        self.cart = cart

    def checkout(self, user_id: int, groups: List[OrderDraft],
                 status: OrderStatus = OrderStatus.PENDING,
                 payment_status: PaymentStatus = PaymentStatus.PENDING,
                 payment_id: Optional[int] = None) -> CheckoutResult:
        """
        Create one order per group, tolerating per-group failures

        Raises:
            ValidationError: no groups submitted
            InvalidAddressError: any referenced address is not usable
        """
        if not groups:
            raise ValidationError("No order groups submitted")

        address_ids = {g.address_id for g in groups}
        addresses = self.orders.addresses.find_owned_verified_addresses(user_id, address_ids)
        invalid = sorted(a for a in address_ids if a not in addresses)
        if invalid:
            raise InvalidAddressError(
                "One or more delivery addresses are invalid or not verified",
                details={"address_ids": invalid}
            )

        result = CheckoutResult()
        for n, group in enumerate(groups, 1):
            try:
                prepared = self.orders.prepare(user_id, group, address=addresses[group.address_id])
                order = self.orders.persist(user_id, prepared, status=status,
                                            payment_status=payment_status, payment_id=payment_id)
            except BaseApplicationError as e:
                result.errors.append(f"Group {n}: {e.message}")
                logger.info("checkout_group_rejected", user_id=user_id, group=n, error_code=e.error_code)
                continue
            result.orders.append(order)
            result.created_groups.append(n)

        logger.info("checkout_completed", user_id=user_id, groups=len(groups),
                    created=len(result.orders), failed=len(result.errors))
        return result

    def checkout_cart(self, user_id: int) -> CheckoutResult:
        """Check out the live cart and drop the lines of every group that became an order"""
        cart = self.cart.get_cart(user_id)
        if not cart.lines:
            raise ValidationError("Cart is empty")
        drafts = self.cart.to_drafts(cart.groups)

        result = self.checkout(user_id, drafts)
        line_ids = self.cart.group_line_ids(cart.groups)
        self.cart.remove_lines(user_id, [i for n in result.created_groups for i in line_ids[n]])
        return result
