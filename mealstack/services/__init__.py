"""
Business logic services.
ServiceContainer wires every service to one database, gateway and clock;
the app factory builds exactly one per application.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..config.settings import Settings
from ..core.database import DatabaseManager
from ..core.security import SecurityManager
from ..gateway.port import PaymentGateway
from .address_service import AddressBook
from .capacity_service import CapacityLedger
from .cart_service import CartService
from .checkout_service import CheckoutResult, CheckoutService
from .menu_service import MenuCatalog
from .order_service import OrderService
from .payment_service import ConfirmResult, PaymentService
from .subscription_service import SubscriptionService


@dataclass
class ServiceContainer:
    settings: Settings
    db: DatabaseManager
    gateway: PaymentGateway
    security: SecurityManager
    ledger: CapacityLedger
    catalog: MenuCatalog
    addresses: AddressBook
    orders: OrderService
    cart: CartService
    checkout: CheckoutService
    payments: PaymentService
    subscriptions: SubscriptionService

    @classmethod
    def build(cls, settings: Settings, db: DatabaseManager, gateway: PaymentGateway,
              clock: Callable[[], datetime] = datetime.now) -> "ServiceContainer":
        security = SecurityManager(settings.jwt_secret_key, settings.jwt_algorithm, settings.jwt_expire_hours)
        ledger = CapacityLedger(db, default_limit=settings.default_meal_capacity, clock=clock)
        catalog = MenuCatalog(db)
        addresses = AddressBook(db)
        orders = OrderService(db, ledger, catalog, addresses, settings, clock=clock)
        cart = CartService(db, catalog, settings, clock=clock)
        checkout = CheckoutService(orders, cart)
        payments = PaymentService(db, gateway, checkout, cart, orders, settings, clock=clock)
        subscriptions = SubscriptionService(db, payments, addresses, settings, clock=clock)
        return cls(
            settings=settings, db=db, gateway=gateway, security=security, ledger=ledger,
            catalog=catalog, addresses=addresses, orders=orders, cart=cart,
            checkout=checkout, payments=payments, subscriptions=subscriptions,
        )


__all__ = [
    "AddressBook",
    "CapacityLedger",
    "CartService",
    "CheckoutResult",
    "CheckoutService",
    "ConfirmResult",
    "MenuCatalog",
    "OrderService",
    "PaymentService",
    "ServiceContainer",
    "SubscriptionService",
]
