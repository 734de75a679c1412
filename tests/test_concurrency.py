import threading

import pytest

from database import Database
from errors import InsufficientStock
from inventory import InventoryManager
from users import UserService


@pytest.fixture
def file_database(tmp_path):
    db = Database("sqlite:///%s" % (tmp_path / "shop.db"), busy_timeout=10)
    db.create_all()
    yield db
    db.close()


def _race(inventory, sweet_id, quantity, buyer_id, workers):
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            outcome = inventory.purchase(sweet_id, quantity, buyer_id)
        except InsufficientStock as exc:
            outcome = exc
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_two_concurrent_purchases_cannot_oversell(file_database):
    inventory = InventoryManager(file_database)
    buyer = UserService(file_database).register("Buyer", "buyer@example.com", "password123")
    sweet = inventory.create_sweet({"name": "Birthday Cake", "category": "Cakes", "price": 12.99, "quantity": 10})

    outcomes = _race(inventory, sweet.id, 6, buyer.id, workers=2)

    failures = [o for o in outcomes if isinstance(o, InsufficientStock)]
    successes = [o for o in outcomes if not isinstance(o, InsufficientStock)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert inventory.get_sweet(sweet.id).quantity == 4
    assert len(inventory.list_orders(buyer.id)) == 1


def test_many_concurrent_single_unit_purchases_stop_at_zero(file_database):
    inventory = InventoryManager(file_database)
    buyer = UserService(file_database).register("Buyer", "buyer@example.com", "password123")
    sweet = inventory.create_sweet({"name": "Chocolate Donut", "category": "Donuts", "price": 3.99, "quantity": 5})

    outcomes = _race(inventory, sweet.id, 1, buyer.id, workers=8)

    assert len(outcomes) == 8
    assert sum(not isinstance(o, InsufficientStock) for o in outcomes) == 5
    assert inventory.get_sweet(sweet.id).quantity == 0
    assert len(inventory.list_orders(buyer.id)) == 5


def test_in_memory_database_serializes_concurrent_purchases():
    database = Database("sqlite://")
    database.create_all()
    try:
        inventory = InventoryManager(database)
        buyer = UserService(database).register("Buyer", "buyer@example.com", "password123")
        sweet = inventory.create_sweet({"name": "Vanilla Ice Cream", "category": "Ice Cream",
                                        "price": 4.99, "quantity": 50})
        barrier = threading.Barrier(4)
        errors = []

        def worker():
            barrier.wait()
            for _ in range(10):
                try:
                    inventory.purchase(sweet.id, 1, buyer.id)
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert inventory.get_sweet(sweet.id).quantity == 10
        assert len(inventory.list_orders(buyer.id)) == 40
    finally:
        database.close()
