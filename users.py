"""Accounts: registration, login and employee management."""
import logging
import re

from sqlalchemy import select

from database import Database
from errors import Conflict, InvalidInput, NotFound, Unauthorized
from models_sql import User, ROLES, ROLE_ADMIN, ROLE_EMPLOYEE, utcnow
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

EMAIL_REGEX = r'^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$'


def _require(name, email):
    if not all(isinstance(v, str) and v.strip() for v in (name, email)):
        raise InvalidInput("Name and email are required")
    if not re.match(EMAIL_REGEX, email):
        raise InvalidInput("Invalid email format")


class UserService:

    def __init__(self, database: Database) -> None:
        self._db = database

    def register(self, name, email, password, role=ROLE_EMPLOYEE):
        _require(name, email)
        if not isinstance(password, str) or not password:
            raise InvalidInput("Password is required")
        if role not in ROLES:
            raise InvalidInput("Role must be one of: %s" % ", ".join(ROLES))

        with self._db.session_scope() as session:
            if session.scalar(select(User.id).where(User.email == email)) is not None:
                raise Conflict("User already exists")
            user = User(name=name, email=email, password_hash=hash_password(password), role=role)
            session.add(user)
            session.flush()

        logger.info("User %s registered with role %s", user.id, user.role)
        return user

    def authenticate(self, email, password):
        with self._db.session_scope() as session:
            user = session.scalar(select(User).where(User.email == email))
        if not user or not verify_password(user.password_hash, password):
            raise Unauthorized("Invalid credentials")
        return user

    # ---------- Employees (admin only) ----------

    def list_employees(self):
        query = select(User).where(User.role != ROLE_ADMIN).order_by(User.created_at.desc(), User.id.desc())
        with self._db.session_scope() as session:
            return list(session.scalars(query))

    def _employee(self, session, employee_id):
        user = session.get(User, employee_id)
        if user is None or user.role == ROLE_ADMIN:
            raise NotFound("Employee not found")
        return user

    def get_employee(self, employee_id):
        with self._db.session_scope() as session:
            return self._employee(session, employee_id)

    def create_employee(self, name, email, password, role=ROLE_EMPLOYEE):
        if role != ROLE_EMPLOYEE:
            raise InvalidInput("Only employee role can be created")
        return self.register(name, email, password, role=role)

    def update_employee(self, employee_id, name, email, role=ROLE_EMPLOYEE):
        _require(name, email)
        if role != ROLE_EMPLOYEE:
            raise InvalidInput("Only employee role is allowed")

        with self._db.session_scope() as session:
            user = self._employee(session, employee_id)
            taken = session.scalar(select(User.id).where(User.email == email, User.id != employee_id))
            if taken is not None:
                raise Conflict("Email is already used by another user")
            user.name = name
            user.email = email
            user.role = role
            user.updated_at = utcnow()
        return user

    def delete_employee(self, employee_id):
        with self._db.session_scope() as session:
            session.delete(self._employee(session, employee_id))
        logger.info("Employee %s deleted", employee_id)
