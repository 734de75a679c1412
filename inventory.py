"""Inventory transaction manager.

Every write to ``sweets.quantity`` goes through ``InventoryManager``. Stock is
changed with a single conditional UPDATE, so the availability check and the
decrement cannot be separated by a concurrent purchase, and the order rows are
written in the same transaction as the decrement.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from numbers import Number
from typing import List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import joinedload, selectinload

from database import Database
from errors import InsufficientStock, InvalidInput, NotFound
from models_sql import Order, OrderItem, Sweet, utcnow

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')

REQUIRED_SWEET_FIELDS = ('name', 'category', 'price', 'quantity')
SWEET_FIELDS = REQUIRED_SWEET_FIELDS + ('description', 'image_url')

SAMPLE_SWEETS = [
    {'name': 'Birthday Cake', 'category': 'Cakes', 'price': 12.99, 'quantity': 10,
     'description': 'Delicious birthday cake with layers of cream',
     'image_url': '/images/sweets/Birthday cake-pana.png'},
    {'name': 'Sweet Choice', 'category': 'Candy', 'price': 5.99, 'quantity': 0,
     'description': 'Assorted sweet treats',
     'image_url': '/images/sweets/Choice-pana.png'},
    {'name': 'Chocolate Donut', 'category': 'Donuts', 'price': 3.99, 'quantity': 3,
     'description': 'Glazed chocolate donut with sprinkles',
     'image_url': '/images/sweets/Choice-pana.png'},
    {'name': 'Vanilla Ice Cream', 'category': 'Ice Cream', 'price': 4.99, 'quantity': 15,
     'description': 'Creamy vanilla ice cream',
     'image_url': '/images/sweets/Choice-pana.png'},
    {'name': 'Strawberry Pastry', 'category': 'Pastries', 'price': 6.99, 'quantity': 2,
     'description': 'Fresh strawberry pastry with cream',
     'image_url': '/images/sweets/Eating healthy food-rafiki.png'},
]


@dataclass
class SweetFilters:
    search: Optional[str] = None
    category: Optional[str] = None
    max_price: Optional[float] = None
    in_stock: Optional[bool] = None  # None means unfiltered


@dataclass
class PurchaseResult:
    order: Order
    sweet_name: str
    unit_price: Decimal


def generate_order_id():
    return "order-%d-%s" % (int(time.time() * 1000), uuid.uuid4().hex[:9])


# ------------------------------------------------------------
# Validation helpers
# ------------------------------------------------------------

def _sweet_id(value):
    # ids that cannot be integers cannot exist
    try:
        return int(value)
    except (TypeError, ValueError):
        raise NotFound("Sweet not found")


def _positive_quantity(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput("Quantity must be an integer")
    if value <= 0:
        raise InvalidInput("Quantity must be a positive integer")
    return value


def _non_negative_quantity(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput("Quantity must be an integer")
    if value < 0:
        raise InvalidInput("Quantity cannot be negative")
    return value


def _price(value):
    if isinstance(value, bool) or not isinstance(value, Number):
        raise InvalidInput("Price must be a number")
    try:
        price = Decimal(str(value)).quantize(CENTS)
    except InvalidOperation:
        raise InvalidInput("Price must be a number")
    if not price.is_finite() or price < 0:
        raise InvalidInput("Price must be a non-negative number")
    return price


def _text(value, field, required):
    if value is None and not required:
        return ''
    if not isinstance(value, str):
        raise InvalidInput("%s must be a string" % field.capitalize())
    if required and not value.strip():
        raise InvalidInput("%s must not be empty" % field.capitalize())
    return value


def _clean_sweet_field(field, value):
    if field == 'price':
        return _price(value)
    if field == 'quantity':
        return _non_negative_quantity(value)
    return _text(value, field, required=field in REQUIRED_SWEET_FIELDS)


def build_sweet_patch(updates):
    """Turn caller-supplied fields into a validated column -> value mapping."""
    unknown = set(updates) - set(SWEET_FIELDS)
    if unknown:
        raise InvalidInput("Unknown fields: %s" % ", ".join(sorted(unknown)))
    patch = {field: _clean_sweet_field(field, value) for field, value in updates.items()}
    if not patch:
        raise InvalidInput("No fields to update")
    return patch


# ------------------------------------------------------------
# Manager
# ------------------------------------------------------------

class InventoryManager:

    def __init__(self, database: Database) -> None:
        self._db = database

    # ---------- Stock-changing operations ----------

    def purchase(self, sweet_id, quantity: int, buyer_id: int, order_id: Optional[str] = None) -> PurchaseResult:
        """Decrement stock and record a pending order with one item, atomically.

        Raises ``InvalidInput`` for a non-positive quantity, ``NotFound`` for an
        unknown sweet and ``InsufficientStock`` when the sweet holds fewer units
        than requested. In each of those cases nothing is written.
        """
        quantity = _positive_quantity(quantity)
        sweet_id = _sweet_id(sweet_id)

        with self._db.session_scope() as session:
            decremented = session.execute(
                update(Sweet)
                .where(Sweet.id == sweet_id, Sweet.quantity >= quantity)
                .values(quantity=Sweet.quantity - quantity, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if decremented.rowcount == 0:
                available = session.execute(
                    select(Sweet.quantity).where(Sweet.id == sweet_id)
                ).scalar_one_or_none()
                if available is None:
                    raise NotFound("Sweet not found")
                logger.info("Purchase rejected: sweet %s has %s, %s requested", sweet_id, available, quantity)
                raise InsufficientStock()

            # the row is write-locked by the update above
            name, unit_price = session.execute(
                select(Sweet.name, Sweet.price).where(Sweet.id == sweet_id)
            ).one()
            unit_price = Decimal(unit_price).quantize(CENTS)
            total = (unit_price * quantity).quantize(CENTS)

            order = Order(id=order_id or generate_order_id(), user_id=buyer_id, total=total, status='pending')
            order.items.append(OrderItem(sweet_id=sweet_id, quantity=quantity, price=unit_price))
            session.add(order)
            session.flush()

        logger.info("Order %s: user %s bought %s x sweet %s for %s", order.id, buyer_id, quantity, sweet_id, total)
        return PurchaseResult(order=order, sweet_name=name, unit_price=unit_price)

    def restock(self, sweet_id, quantity: int) -> Sweet:
        quantity = _positive_quantity(quantity)
        sweet_id = _sweet_id(sweet_id)

        with self._db.session_scope() as session:
            result = session.execute(
                update(Sweet)
                .where(Sweet.id == sweet_id)
                .values(quantity=Sweet.quantity + quantity, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("Sweet not found")
            sweet = session.get(Sweet, sweet_id)

        logger.info("Sweet %s restocked by %s, now %s", sweet_id, quantity, sweet.quantity)
        return sweet

    # ---------- Sweet CRUD ----------

    def list_sweets(self, filters: Optional[SweetFilters] = None) -> List[Sweet]:
        filters = filters or SweetFilters()
        query = select(Sweet)

        if filters.search:
            query = query.where(or_(
                Sweet.name.icontains(filters.search, autoescape=True),
                Sweet.description.icontains(filters.search, autoescape=True),
            ))
        if filters.category:
            query = query.where(Sweet.category == filters.category)
        if filters.max_price is not None:
            query = query.where(Sweet.price <= filters.max_price)
        if filters.in_stock is True:
            query = query.where(Sweet.quantity > 0)
        elif filters.in_stock is False:
            query = query.where(Sweet.quantity == 0)

        with self._db.session_scope() as session:
            return list(session.scalars(query.order_by(Sweet.id)))

    def get_sweet(self, sweet_id) -> Sweet:
        sweet_id = _sweet_id(sweet_id)
        with self._db.session_scope() as session:
            sweet = session.get(Sweet, sweet_id)
            if sweet is None:
                raise NotFound("Sweet not found")
            return sweet

    def create_sweet(self, data: dict) -> Sweet:
        if any(data.get(f) is None for f in REQUIRED_SWEET_FIELDS):
            raise InvalidInput("Missing required fields: %s" % ", ".join(REQUIRED_SWEET_FIELDS))
        values = build_sweet_patch({k: v for k, v in data.items() if k in SWEET_FIELDS})

        with self._db.session_scope() as session:
            sweet = Sweet(**values)
            session.add(sweet)
            session.flush()

        logger.info("Sweet %s created (%s)", sweet.id, sweet.name)
        return sweet

    def update_sweet(self, sweet_id, updates: dict) -> Sweet:
        """Apply a partial update; only the supplied fields change."""
        sweet_id = _sweet_id(sweet_id)
        patch = build_sweet_patch(updates)

        with self._db.session_scope() as session:
            result = session.execute(
                update(Sweet)
                .where(Sweet.id == sweet_id)
                .values(**patch, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("Sweet not found")
            return session.get(Sweet, sweet_id)

    def delete_sweet(self, sweet_id) -> None:
        sweet_id = _sweet_id(sweet_id)
        with self._db.session_scope() as session:
            result = session.execute(delete(Sweet).where(Sweet.id == sweet_id))
            if result.rowcount == 0:
                raise NotFound("Sweet not found")
        logger.info("Sweet %s deleted", sweet_id)

    def seed_sample_sweets(self) -> int:
        with self._db.session_scope() as session:
            if session.scalar(select(func.count(Sweet.id))):
                return 0
            session.add_all(Sweet(**build_sweet_patch(s)) for s in SAMPLE_SWEETS)
        logger.info("Sample sweets data inserted")
        return len(SAMPLE_SWEETS)

    # ---------- Orders ----------

    def _orders_query(self):
        return select(Order).options(selectinload(Order.items).joinedload(OrderItem.sweet))

    def list_orders(self, user_id: int, is_admin: bool = False) -> List[Order]:
        query = self._orders_query()
        if not is_admin:
            query = query.where(Order.user_id == user_id)
        with self._db.session_scope() as session:
            return list(session.scalars(query.order_by(Order.created_at.desc(), Order.id)))

    def get_order(self, order_id: str, user_id: int, is_admin: bool = False) -> Order:
        with self._db.session_scope() as session:
            order = session.scalar(self._orders_query().where(Order.id == order_id))
            # other users' orders are reported as missing
            if order is None or (not is_admin and order.user_id != user_id):
                raise NotFound("Order not found")
            return order
