from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    # naive UTC, matching what the database hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


ROLE_ADMIN = 'admin'
ROLE_EMPLOYEE = 'employee'
ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE)

ORDER_STATUSES = ('pending', 'processing', 'completed', 'cancelled')


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    email = Column(String(150), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default=ROLE_EMPLOYEE, nullable=False)  # either admin or employee
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    orders = relationship("Order", back_populates="owner", passive_deletes="all")


class Sweet(Base):
    __tablename__ = 'sweets'
    __table_args__ = (
        CheckConstraint('price >= 0', name='ck_sweets_price_non_negative'),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    # only InventoryManager writes this column; no storage-level guard
    quantity = Column(Integer, nullable=False, default=0)
    description = Column(Text, default='')
    image_url = Column(String(255), default='')
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class Order(Base):
    __tablename__ = 'orders'

    id = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    total = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), default='pending', nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    owner = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", lazy="selectin")


class OrderItem(Base):
    __tablename__ = 'order_items'

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), ForeignKey('orders.id'), nullable=False, index=True)
    sweet_id = Column(Integer, ForeignKey('sweets.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # unit price at purchase time

    order = relationship("Order", back_populates="items")
    sweet = relationship("Sweet")
