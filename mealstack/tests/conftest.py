"""
Test configuration
Fixtures for an in-memory database, a controllable clock and seeded data
"""

from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from ..app import create_app
from ..config.settings import Settings
from ..core.database import DatabaseManager, fetch_one
from ..gateway.fake import FakeGateway

# Monday 05:00, before every cutoff
TODAY = date(2025, 3, 10)


class FixedClock:
    """Callable clock the tests can move"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set_time(self, hour: int, minute: int = 0):
        self.now = self.now.replace(hour=hour, minute=minute)


@pytest.fixture
def clock():
    return FixedClock(datetime(TODAY.year, TODAY.month, TODAY.day, 5, 0))


@pytest.fixture
def test_settings():
    """Test configuration"""
    return Settings(
        database_url=":memory:",
        jwt_secret_key="test-secret-key",
        api_title="MealStack API (Test)",
        api_version="1.0.0-test",
        gateway_key_secret="test-gateway-secret",
        use_fake_gateway=True,
        debug=True,
    )


@pytest.fixture
def test_db():
    """In-memory database with the full schema"""
    db_manager = DatabaseManager(":memory:")
    db_manager.init_database()
    yield db_manager
    db_manager.close()


@pytest.fixture
def gateway(test_settings):
    return FakeGateway(test_settings.gateway_key_secret)


@pytest.fixture
def app_instance(test_settings, test_db, gateway, clock):
    """Application wired to the test database, gateway and clock"""
    return create_app(settings=test_settings, db=test_db, gateway=gateway, clock=clock)


@pytest.fixture
def container(app_instance):
    return app_instance.state.container


@pytest.fixture
def client(app_instance):
    """Test client"""
    return TestClient(app_instance)


def _insert_user(db, email, full_name, role="user"):
    with db.transaction() as conn:
        return fetch_one(
            conn,
            "INSERT INTO users(email, full_name, role) VALUES (?, ?, ?) RETURNING *",
            [email, full_name, role]
        )


@pytest.fixture
def sample_user(test_db):
    return _insert_user(test_db, "asha@example.com", "Asha Rao")


@pytest.fixture
def other_user(test_db):
    return _insert_user(test_db, "vik@example.com", "Vikram Shah")


@pytest.fixture
def admin_user(test_db):
    return _insert_user(test_db, "admin@example.com", "Kitchen Admin", role="admin")


@pytest.fixture
def verified_address(container, sample_user, admin_user):
    """Verified home address for the sample user"""
    address = container.addresses.create_address(sample_user["id"], {
        "address_type": "home",
        "address": "12 MG Road, Bengaluru",
        "nearest_location": "Trinity Metro",
    })
    return container.addresses.set_verification(address.id, True, actor_id=admin_user["id"])


@pytest.fixture
def unverified_address(container, sample_user):
    return container.addresses.create_address(sample_user["id"], {
        "address_type": "office",
        "address": "4th Floor, Prestige Tower",
    })


@pytest.fixture
def menu_items(container, admin_user):
    """Catalog: regular and special items across meal types"""
    catalog = container.catalog
    items = {
        "thali": catalog.create_item({"name": "Veg Thali", "meal_type": "lunch", "price_cents": 12000}),
        "paneer": catalog.create_item({"name": "Paneer Tikka", "meal_type": "lunch", "price_cents": 8000,
                                       "is_special_item": True}),
        "poha": catalog.create_item({"name": "Poha", "meal_type": "breakfast", "price_cents": 4000}),
        "khichdi": catalog.create_item({"name": "Dal Khichdi", "meal_type": "dinner", "price_cents": 10000}),
    }
    return items


@pytest.fixture
def auth_headers(container, sample_user):
    token = container.security.create_jwt_token(sample_user["id"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_headers(container, other_user):
    token = container.security.create_jwt_token(other_user["id"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(container, admin_user):
    token = container.security.create_jwt_token(admin_user["id"], role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def tomorrow():
    return TODAY + timedelta(days=1)
