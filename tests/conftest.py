import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app import create_app
from config import Settings
from database import Database
from inventory import InventoryManager
from models_sql import Order, OrderItem
from users import UserService


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def inventory(database):
    return InventoryManager(database)


@pytest.fixture
def user_service(database):
    return UserService(database)


@pytest.fixture
def buyer(user_service):
    return user_service.register("Test Employee", "buyer@example.com", "password123")


@pytest.fixture
def make_sweet(inventory):
    def _make(**overrides):
        data = {"name": "Chocolate Cake", "category": "Cakes", "price": 12.99, "quantity": 10}
        data.update(overrides)
        return inventory.create_sweet(data)
    return _make


@pytest.fixture
def count_orders(database):
    def _count():
        with database.session_scope() as session:
            return (session.scalar(select(func.count(Order.id))),
                    session.scalar(select(func.count(OrderItem.id))))
    return _count


# ----------------------------
# HTTP fixtures
# ----------------------------

@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", jwt_secret_key="test-secret", log_level="WARNING")


@pytest.fixture
def client(settings, database):
    app = create_app(settings, database=database)
    with TestClient(app) as test_client:
        yield test_client


def register(client, name, email, role):
    response = client.post("/api/auth/register", json={
        "name": name, "email": email, "password": "password123", "role": role,
    })
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token):
    return {"Authorization": "Bearer %s" % token}


@pytest.fixture
def admin_headers(client):
    return bearer(register(client, "Test Admin", "admin@example.com", "admin")["token"])


@pytest.fixture
def employee_headers(client):
    return bearer(register(client, "Test Employee", "employee@example.com", "employee")["token"])
