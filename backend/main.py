from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .db import SessionLocal
from .errors import OrderError
from .models import Item, Order, Product
from .orders import item_to_dict, parse_submission, submit_order

import os, logging, re

load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger(__name__)

MAX_ORDER_LIMIT = 1000


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in ("1", "true", "yes")


def _allowed_origins() -> list[str]:
    raw = os.getenv("FRONTEND_URL")
    if not raw:
        return ["http://localhost:3000"]
    return [u.strip() for u in raw.split(",") if u.strip()]


def _parse_limit(raw: str | None) -> int | None:
    # "20", "20abc" -> 20, 그 외/범위 밖은 None (전체 조회)
    m = re.match(r"\s*(\d+)", raw or "")
    if not m:
        return None
    n = int(m.group(1))
    return n if 0 < n <= MAX_ORDER_LIMIT else None


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


async def order_error_handler(request: Request, exc: OrderError):
    if exc.status_code >= 500:
        message = "Failed to place order"
    else:
        logger.info(f"[ORDER] rejected: {exc.message}")
        message = exc.message
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.code, "message": message, **exc.details},
    )


def product_to_dict(p: Product) -> dict:
    return {
        "product_id": p.product_id,
        "product_name": p.product_name,
        "category": p.category,
        "price": p.price,
        "cost": p.cost,
        "stock": p.stock,
    }


def order_to_dict(o: Order) -> dict:
    return {
        "order_id": o.order_id,
        "member_id": o.member_id,
        "employee_id": o.employee_id,
        "order_time": o.order_time.isoformat() if o.order_time else None,
        "order_status": o.order_status,
    }


router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "message": "Server is running"}


@router.get("/api/products")
def list_products(category: str | None = None, db: Session = Depends(get_db)):
    stmt = select(Product).order_by(Product.product_id.asc())
    if category:
        stmt = stmt.where(Product.category == category)
    return [product_to_dict(p) for p in db.scalars(stmt)]


# 주문 생성 (메인 + add-on 그룹 전개, 재고 차감까지 한 트랜잭션)
@router.post("/api/orders", status_code=201)
def create_order(request: Request, payload=Body(None), db: Session = Depends(get_db)):
    submission = parse_submission(payload)
    confirmation = submit_order(db, submission, strict_stock=request.app.state.strict_stock)
    return {
        "success": True,
        "orderId": confirmation.order_id,
        "message": "Order placed successfully",
        "order": confirmation.order_payload(),
    }


@router.get("/api/orders")
def list_orders(
    limit: str | None = None,
    include_items: bool = Query(True, alias="includeItems"),
    db: Session = Depends(get_db),
):
    """
    limit: 1..1000 범위의 정수일 때만 적용 (그 외, 숫자가 아니어도 전체)
    includeItems=false 면 items 는 빈 배열 (빠른 조회)
    """
    stmt = select(Order).order_by(Order.order_time.desc(), Order.order_id.desc())
    limit = _parse_limit(limit)
    if limit:
        stmt = stmt.limit(limit)
    if include_items:
        stmt = stmt.options(selectinload(Order.items))
    orders = db.scalars(stmt).all()

    ids = [o.order_id for o in orders]
    totals = dict(
        db.execute(
            select(Item.order_id, func.coalesce(func.sum(Item.price), 0))
            .where(Item.order_id.in_(ids))
            .group_by(Item.order_id)
        ).all()
    ) if ids else {}

    return [
        {
            **order_to_dict(o),
            "total": totals.get(o.order_id, 0),
            "items": [item_to_dict(it) for it in o.items] if include_items else [],
        }
        for o in orders
    ]


@router.get("/api/orders/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db)):
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(404, "Order not found")

    rows = db.execute(
        select(Item, Product.product_name)
        .outerjoin(Product, Item.product_id == Product.product_id)
        .where(Item.order_id == order_id)
        .order_by(Item.group_id, Item.item_id)
    ).all()

    return {
        **order_to_dict(order),
        "items": [{**item_to_dict(it), "product_name": name} for it, name in rows],
    }


def create_app(session_factory=None, strict_stock: bool | None = None) -> FastAPI:
    app = FastAPI(title="Boba POS API")
    app.state.session_factory = session_factory or SessionLocal
    app.state.strict_stock = _env_flag("STRICT_STOCK") if strict_stock is None else strict_stock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(OrderError, order_error_handler)
    app.include_router(router)
    logger.info(f"[APP] strict_stock={app.state.strict_stock}")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 3001)))
