import pytest

from ..core.exceptions import (
    ConcurrencyError,
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    PaymentVerificationFailedError,
    ValidationError,
)
from ..models.order import DraftItem, OrderDraft


@pytest.fixture
def filled_cart(container, sample_user, verified_address, menu_items, tomorrow):
    """Lunch and dinner for tomorrow: 2 x 12000 + 500 and 10000 + 500"""
    uid, addr = sample_user["id"], verified_address.id
    container.cart.add_line(uid, menu_items["thali"].id, tomorrow, "lunch", 2, addr)
    container.cart.add_line(uid, menu_items["khichdi"].id, tomorrow, "dinner", 1, addr)
    return container.cart.get_cart(uid)


def confirm(container, gateway, user_id, gateway_order_id, payment_id="pay_001", **kwargs):
    return container.payments.confirm(user_id, gateway_order_id, payment_id,
                                      gateway.sign(gateway_order_id, payment_id), **kwargs)


class TestInitiatePayment:
    """Payment initiation tests"""

    def test_initiate_creates_no_orders(self, container, sample_user, filled_cart, tomorrow):
        """Nothing is reserved until the payment is confirmed"""
        handle = container.payments.initiate(sample_user["id"])

        assert handle["amount_cents"] == filled_cart.summary.total_cents == 35000
        assert handle["currency"] == "INR"
        assert handle["gateway_order_id"].startswith("order_")
        assert handle["payment"].status == "created"
        assert len(handle["payment"].groups) == 2

        _, total = container.orders.list_orders(user_id=sample_user["id"])
        assert total == 0
        assert container.ledger.find(tomorrow) is None

    def test_empty_cart(self, container, sample_user):
        with pytest.raises(ValidationError):
            container.payments.initiate(sample_user["id"])

    def test_amount_mismatch(self, container, sample_user, filled_cart):
        with pytest.raises(ValidationError):
            container.payments.initiate(sample_user["id"], total_amount_cents=100)

    def test_explicit_groups_priced_from_catalog(self, container, sample_user, verified_address,
                                                 menu_items, tomorrow):
        groups = [OrderDraft(order_date=tomorrow, meal_type="lunch", address_id=verified_address.id,
                             items=[DraftItem(menu_item_id=menu_items["paneer"].id, quantity=1)])]
        handle = container.payments.initiate(sample_user["id"], groups=groups)
        assert handle["amount_cents"] == 8500

    def test_gateway_failure(self, container, gateway, sample_user, filled_cart):
        gateway.configure(should_succeed=False)
        with pytest.raises(GatewayError):
            container.payments.initiate(sample_user["id"])
        payments, total = container.payments.list_payments(user_id=sample_user["id"])
        assert total == 0


class TestConfirmPayment:
    """Payment confirmation tests"""

    def test_confirm_creates_paid_orders(self, container, gateway, sample_user, filled_cart, tomorrow):
        handle = container.payments.initiate(sample_user["id"])
        result = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])

        assert not result.already_completed
        assert result.payment.status == "completed"
        assert result.payment.completed_at is not None
        assert len(result.orders) == 2
        for order in result.orders:
            assert order.status == "confirmed"
            assert order.payment_status == "paid"
            assert order.payment_id == result.payment.id
        assert sorted(result.payment.order_ids) == sorted(o.id for o in result.orders)

        record = container.ledger.find(tomorrow)
        assert record.lunch.booked == 1
        assert record.dinner.booked == 1
        assert container.cart.get_cart(sample_user["id"]).lines == []

    def test_confirm_is_idempotent(self, container, gateway, sample_user, filled_cart, tomorrow):
        """A repeated confirmation returns the same orders and reserves nothing"""
        handle = container.payments.initiate(sample_user["id"])
        first = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])
        second = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])

        assert second.already_completed
        assert [o.id for o in second.orders] == sorted(o.id for o in first.orders)
        _, total = container.orders.list_orders(user_id=sample_user["id"])
        assert total == 2
        assert container.ledger.find(tomorrow).lunch.booked == 1

    def test_bad_signature(self, container, gateway, sample_user, filled_cart):
        """Failed verification marks the payment failed and creates nothing"""
        handle = container.payments.initiate(sample_user["id"])
        with pytest.raises(PaymentVerificationFailedError):
            container.payments.confirm(sample_user["id"], handle["gateway_order_id"], "pay_001", "forged")

        payment = container.payments.get_payment(sample_user["id"], handle["payment"].id)
        assert payment.status == "failed"
        _, total = container.orders.list_orders(user_id=sample_user["id"])
        assert total == 0

        # The customer can retry after a failed attempt
        result = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"], "pay_002")
        assert result.payment.status == "completed"
        assert len(result.orders) == 2

    def test_unknown_payment(self, container, gateway, sample_user):
        with pytest.raises(NotFoundError):
            confirm(container, gateway, sample_user["id"], "order_missing")

    def test_other_users_payment(self, container, gateway, sample_user, other_user, filled_cart):
        handle = container.payments.initiate(sample_user["id"])
        with pytest.raises(NotFoundError):
            confirm(container, gateway, other_user["id"], handle["gateway_order_id"])

    def test_partial_confirmation(self, container, gateway, sample_user, filled_cart, tomorrow):
        """Groups that fail at confirmation are reported; the payment still completes"""
        handle = container.payments.initiate(sample_user["id"])
        container.ledger.set_limit(tomorrow, "dinner", 0)

        result = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])

        assert result.payment.status == "completed"
        assert len(result.orders) == 1
        assert result.errors[0].startswith("Group 2: ")

    def test_no_group_succeeds(self, container, gateway, sample_user, filled_cart, tomorrow):
        """Zero orders still completes the payment and keeps the cart"""
        handle = container.payments.initiate(sample_user["id"])
        container.ledger.set_limits(tomorrow, {"lunch": 0, "dinner": 0})

        result = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])

        assert result.orders == []
        assert len(result.errors) == 2
        assert result.payment.status == "completed"
        assert len(container.cart.get_cart(sample_user["id"]).lines) == 2

    def test_refunded_payment_cannot_confirm(self, container, gateway, sample_user, admin_user, filled_cart):
        handle = container.payments.initiate(sample_user["id"])
        result = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])
        container.payments.refund(result.payment.id, actor_id=admin_user["id"])

        with pytest.raises(InvalidTransitionError):
            confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])


class TestPaymentFailureAndRefund:

    def test_record_failure(self, container, sample_user, filled_cart):
        handle = container.payments.initiate(sample_user["id"])
        payment = container.payments.record_failure(sample_user["id"], handle["gateway_order_id"],
                                                    "card_declined")
        assert payment.status == "failed"

    def test_record_failure_after_completion(self, container, gateway, sample_user, filled_cart):
        handle = container.payments.initiate(sample_user["id"])
        confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])
        with pytest.raises(InvalidTransitionError):
            container.payments.record_failure(sample_user["id"], handle["gateway_order_id"])

    def test_refund_marks_orders(self, container, gateway, sample_user, admin_user, filled_cart):
        """Refunds flip the orders' payment status but leave their lifecycle alone"""
        handle = container.payments.initiate(sample_user["id"])
        result = confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])

        refunded = container.payments.refund(result.payment.id, actor_id=admin_user["id"], reason="Duplicate")

        assert refunded.status == "refunded"
        for order in container.orders.get_orders(result.payment.order_ids):
            assert order.payment_status == "refunded"
            assert order.status == "confirmed"

    def test_refund_requires_completed(self, container, sample_user, admin_user, filled_cart):
        handle = container.payments.initiate(sample_user["id"])
        with pytest.raises(InvalidTransitionError):
            container.payments.refund(handle["payment"].id, actor_id=admin_user["id"])


class TestConfirmGuards:

    def test_forged_confirm_while_processing(self, container, gateway, sample_user, filled_cart,
                                             tomorrow, monkeypatch):
        """A bad signature cannot knock a claimed payment back to failed and let it be settled twice"""
        uid = sample_user["id"]
        handle = container.payments.initiate(uid)
        gateway_order_id = handle["gateway_order_id"]
        checkout = container.payments.checkout
        real_checkout = checkout.checkout

        def checkout_with_interleaved_requests(*args, **kwargs):
            with pytest.raises(PaymentVerificationFailedError):
                container.payments.confirm(uid, gateway_order_id, "pay_002", "forged")
            with pytest.raises(ConcurrencyError):
                confirm(container, gateway, uid, gateway_order_id, "pay_002")
            return real_checkout(*args, **kwargs)

        monkeypatch.setattr(checkout, "checkout", checkout_with_interleaved_requests)
        result = confirm(container, gateway, uid, gateway_order_id)

        assert result.payment.status == "completed"
        assert len(result.orders) == 2
        _, total = container.orders.list_orders(user_id=uid)
        assert total == 2
        record = container.ledger.find(tomorrow)
        assert (record.lunch.booked, record.dinner.booked) == (1, 1)

    def test_replacement_groups_must_match_paid_amount(self, container, gateway, sample_user,
                                                       verified_address, menu_items, filled_cart, tomorrow):
        uid = sample_user["id"]
        handle = container.payments.initiate(uid)
        bigger = [
            OrderDraft(order_date=tomorrow, meal_type="lunch", address_id=verified_address.id,
                       items=[DraftItem(menu_item_id=menu_items["thali"].id, quantity=20)]),
        ]
        with pytest.raises(ValidationError):
            confirm(container, gateway, uid, handle["gateway_order_id"], groups=bigger)

        payment = container.payments.get_payment(uid, handle["payment"].id)
        assert payment.status == "created"
        assert container.ledger.find(tomorrow) is None

        same_total = [
            OrderDraft(order_date=tomorrow, meal_type="lunch", address_id=verified_address.id,
                       items=[DraftItem(menu_item_id=menu_items["thali"].id, quantity=2)]),
            OrderDraft(order_date=tomorrow, meal_type="dinner", address_id=verified_address.id,
                       items=[DraftItem(menu_item_id=menu_items["khichdi"].id, quantity=1)]),
        ]
        result = confirm(container, gateway, uid, handle["gateway_order_id"], groups=same_total)
        assert sum(o.total_amount_cents for o in result.orders) == result.payment.amount_cents == 35000


@pytest.fixture
def pending_order(container, sample_user, verified_address, menu_items, tomorrow):
    """Lunch placed directly, capacity held, payment pending: 12000 + 500"""
    draft = OrderDraft(order_date=tomorrow, meal_type="lunch", address_id=verified_address.id,
                       items=[DraftItem(menu_item_id=menu_items["thali"].id, quantity=1)])
    return container.orders.place_order(sample_user["id"], draft)


class TestOrderPayments:
    """Paying for orders placed before payment"""

    def test_pay_existing_order(self, container, gateway, sample_user, pending_order, tomorrow):
        uid = sample_user["id"]
        handle = container.payments.initiate_for_orders(uid, [pending_order.id])
        assert handle["amount_cents"] == 12500
        assert handle["payment"].kind == "orders"

        result = confirm(container, gateway, uid, handle["gateway_order_id"])

        assert result.payment.status == "completed"
        assert result.payment.order_ids == [pending_order.id]
        order = result.orders[0]
        assert order.payment_status == "paid"
        assert order.status == "confirmed"
        assert order.payment_id == result.payment.id
        # Capacity was held when the order was placed
        assert container.ledger.find(tomorrow).lunch.booked == 1

        again = confirm(container, gateway, uid, handle["gateway_order_id"])
        assert again.already_completed
        assert [o.id for o in again.orders] == [pending_order.id]

    def test_rejects_paid_or_foreign_orders(self, container, gateway, sample_user, other_user, pending_order):
        with pytest.raises(ValidationError) as exc_info:
            container.payments.initiate_for_orders(other_user["id"], [pending_order.id])
        assert exc_info.value.details["order_ids"] == [pending_order.id]

        handle = container.payments.initiate_for_orders(sample_user["id"], [pending_order.id])
        confirm(container, gateway, sample_user["id"], handle["gateway_order_id"])
        with pytest.raises(ValidationError):
            container.payments.initiate_for_orders(sample_user["id"], [pending_order.id])

    def test_amount_mismatch(self, container, sample_user, pending_order):
        with pytest.raises(ValidationError):
            container.payments.initiate_for_orders(sample_user["id"], [pending_order.id], total_amount_cents=500)

    def test_order_cancelled_before_confirmation(self, container, gateway, sample_user, pending_order):
        uid = sample_user["id"]
        handle = container.payments.initiate_for_orders(uid, [pending_order.id])
        container.orders.cancel_order(uid, pending_order.id, "Changed plans")

        result = confirm(container, gateway, uid, handle["gateway_order_id"])

        assert result.orders == []
        assert result.errors == [f"Order {pending_order.id}: no longer payable"]
        order = container.orders.get_order(uid, pending_order.id)
        assert order.status == "cancelled"
        assert order.payment_status == "pending"

    def test_groups_only_for_checkout_payments(self, container, gateway, sample_user, verified_address,
                                               menu_items, pending_order, tomorrow):
        handle = container.payments.initiate_for_orders(sample_user["id"], [pending_order.id])
        groups = [OrderDraft(order_date=tomorrow, meal_type="lunch", address_id=verified_address.id,
                             items=[DraftItem(menu_item_id=menu_items["thali"].id, quantity=1)])]
        with pytest.raises(ValidationError):
            confirm(container, gateway, sample_user["id"], handle["gateway_order_id"], groups=groups)
