import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, configure_logging
from database import Database
from errors import ShopError
from inventory import InventoryManager, SweetFilters
from schemas import (
    AuthResponse, EmployeeCreate, EmployeeUpdate, LoginRequest, MessageResponse,
    OrderItemResponse, OrderResponse, PurchaseRequest, PurchaseResponse, RegisterRequest,
    StockChangeRequest, SweetCreate, SweetResponse, SweetUpdate, UserResponse,
)
from security import Caller, TokenService, get_current_user, require_admin
from users import UserService

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------

def get_inventory(request: Request) -> InventoryManager:
    return request.app.state.inventory

def get_user_service(request: Request) -> UserService:
    return request.app.state.users

def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def parse_in_stock(value):
    # only "true"/"false" filter; anything else leaves stock unfiltered
    if value is None:
        return None
    value = value.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def order_to_response(order, sweet_name=None):
    items = []
    for item in order.items:
        name = sweet_name
        if name is None and item.sweet is not None:
            name = item.sweet.name
        items.append(OrderItemResponse(
            sweet_id=item.sweet_id, sweet_name=name, quantity=item.quantity, price=item.price
        ))
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        total=order.total,
        status=order.status,
        created_at=order.created_at,
        items=items,
    )


# ------------------------------------------------------------
# Auth
# ------------------------------------------------------------

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

@auth_router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, users: UserService = Depends(get_user_service),
             tokens: TokenService = Depends(get_tokens)):
    user = users.register(payload.name, payload.email, payload.password, role=payload.role)
    return AuthResponse(token=tokens.generate_token(user), user=UserResponse.model_validate(user))

@auth_router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, users: UserService = Depends(get_user_service),
          tokens: TokenService = Depends(get_tokens)):
    user = users.authenticate(payload.email, payload.password)
    return AuthResponse(token=tokens.generate_token(user), user=UserResponse.model_validate(user))


# ------------------------------------------------------------
# Sweets (list/get public, writes admin only, purchase any user)
# ------------------------------------------------------------

sweets_router = APIRouter(prefix="/api/sweets", tags=["sweets"])

@sweets_router.get("", response_model=List[SweetResponse])
@sweets_router.get("/search", response_model=List[SweetResponse])
def list_sweets(
    search: Optional[str] = None,
    category: Optional[str] = None,
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    in_stock: Optional[str] = Query(None, alias="inStock"),
    inventory: InventoryManager = Depends(get_inventory),
):
    filters = SweetFilters(search=search, category=category, max_price=max_price,
                           in_stock=parse_in_stock(in_stock))
    return inventory.list_sweets(filters)

@sweets_router.get("/{sweet_id}", response_model=SweetResponse)
def get_sweet(sweet_id: str, inventory: InventoryManager = Depends(get_inventory)):
    return inventory.get_sweet(sweet_id)

@sweets_router.post("", response_model=SweetResponse, status_code=201)
def create_sweet(payload: SweetCreate, current_user: Caller = Depends(require_admin),
                 inventory: InventoryManager = Depends(get_inventory)):
    return inventory.create_sweet(payload.model_dump())

@sweets_router.put("/{sweet_id}", response_model=SweetResponse)
def update_sweet(sweet_id: str, payload: SweetUpdate, current_user: Caller = Depends(require_admin),
                 inventory: InventoryManager = Depends(get_inventory)):
    return inventory.update_sweet(sweet_id, payload.model_dump(exclude_unset=True))

@sweets_router.delete("/{sweet_id}", response_model=MessageResponse)
def delete_sweet(sweet_id: str, current_user: Caller = Depends(require_admin),
                 inventory: InventoryManager = Depends(get_inventory)):
    inventory.delete_sweet(sweet_id)
    return {"message": "Sweet deleted successfully"}

@sweets_router.post("/{sweet_id}/purchase", response_model=PurchaseResponse)
def purchase_sweet(sweet_id: str, payload: PurchaseRequest, current_user: Caller = Depends(get_current_user),
                   inventory: InventoryManager = Depends(get_inventory)):
    result = inventory.purchase(sweet_id, payload.quantity, current_user.id, order_id=payload.order_id)
    return PurchaseResponse(order=order_to_response(result.order, sweet_name=result.sweet_name))

@sweets_router.post("/{sweet_id}/restock")
def restock_sweet(sweet_id: str, payload: StockChangeRequest, current_user: Caller = Depends(require_admin),
                  inventory: InventoryManager = Depends(get_inventory)):
    sweet = inventory.restock(sweet_id, payload.quantity)
    return {"message": "Sweet restocked successfully", "sweet": SweetResponse.model_validate(sweet)}


# ------------------------------------------------------------
# Orders
# ------------------------------------------------------------

orders_router = APIRouter(prefix="/api/orders", tags=["orders"])

@orders_router.get("", response_model=List[OrderResponse])
def list_orders(current_user: Caller = Depends(get_current_user),
                inventory: InventoryManager = Depends(get_inventory)):
    orders = inventory.list_orders(current_user.id, is_admin=current_user.is_admin)
    return [order_to_response(o) for o in orders]

@orders_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, current_user: Caller = Depends(get_current_user),
              inventory: InventoryManager = Depends(get_inventory)):
    return order_to_response(inventory.get_order(order_id, current_user.id, is_admin=current_user.is_admin))


# ------------------------------------------------------------
# Employees (admin only)
# ------------------------------------------------------------

employees_router = APIRouter(prefix="/api/employees", tags=["employees"], dependencies=[Depends(require_admin)])

@employees_router.get("", response_model=List[UserResponse])
def list_employees(users: UserService = Depends(get_user_service)):
    return users.list_employees()

@employees_router.get("/{employee_id}", response_model=UserResponse)
def get_employee(employee_id: int, users: UserService = Depends(get_user_service)):
    return users.get_employee(employee_id)

@employees_router.post("", response_model=UserResponse, status_code=201)
def create_employee(payload: EmployeeCreate, users: UserService = Depends(get_user_service)):
    return users.create_employee(payload.name, payload.email, payload.password, role=payload.role)

@employees_router.put("/{employee_id}", response_model=UserResponse)
def update_employee(employee_id: int, payload: EmployeeUpdate, users: UserService = Depends(get_user_service)):
    return users.update_employee(employee_id, payload.name, payload.email, role=payload.role)

@employees_router.delete("/{employee_id}", response_model=MessageResponse)
def delete_employee(employee_id: int, users: UserService = Depends(get_user_service)):
    users.delete_employee(employee_id)
    return {"message": "Employee deleted successfully"}


# ------------------------------------------------------------
# Error handling
# ------------------------------------------------------------

async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    missing = [str(e["loc"][-1]) for e in errors if e.get("type") == "missing" and e.get("loc")]
    detail = "Missing required fields: %s" % ", ".join(missing) if missing else "Invalid request"
    return JSONResponse(status_code=400, content={"detail": detail, "errors": jsonable_encoder(errors)})


# ------------------------------------------------------------
# Application factory
# ------------------------------------------------------------

def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API. A ``database`` passed in stays owned by the caller."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    owns_database = database is None
    if owns_database:
        database = Database(settings.database_url, busy_timeout=settings.sqlite_busy_timeout)
    database.create_all()

    inventory = InventoryManager(database)
    if settings.seed_sample_data:
        inventory.seed_sample_sweets()

    @asynccontextmanager
    async def lifespan(app):
        yield
        if owns_database:
            database.close()
            logger.info("Database connection closed")

    app = FastAPI(title="Sweet Shop API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.inventory = inventory
    app.state.users = UserService(database)
    app.state.tokens = TokenService(settings.jwt_secret_key, settings.jwt_algorithm,
                                    settings.token_expiration_hours)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health")
    def health():
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(auth_router)
    app.include_router(sweets_router)
    app.include_router(orders_router)
    app.include_router(employees_router)
    return app


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 3001))
    uvicorn.run("app:create_app", factory=True, host="0.0.0.0", port=port)
