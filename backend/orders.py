"""
Order placement: validate a cart submission, expand it into grouped item rows,
decrement stock and commit, all on one session transaction.

payload 예:
{
  "items": [
    {"product_id": 5, "product_name": "Thai Tea", "quantity": 2, "price": 4.75,
     "modifications": {"iceLevel": "Less Ice", "sugarLevel": "Regular",
                       "addOns": [{"product_id": 10, "price": 0.75}]}}
  ],
  "total": 11.00,
  "timestamp": "2025-11-02T14:03:00Z",   # 생략 시 서버 시각
  "member_id": 7,
  "employee_id": 0
}
"""
import logging
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .errors import InvalidOrder, InvalidType, MissingField, OrderError, StockInsufficient, TransactionFailure
from .models import ORDER_STATUS_COMPLETE, Item, Order, Product

logger = logging.getLogger(__name__)

SLOW_TRANSACTION_SECONDS = 5.0
MAX_LINE_QUANTITY = 100          # 한 줄당 그룹 수 상한 (행 단위 insert)
PRICE_SCALE = Decimal("0.01")
MAX_PRICE = Decimal("100000000")  # Numeric(10, 2)


class AddOn(BaseModel):
    product_id: int
    price: Decimal = Decimal("0")


class CartLine(BaseModel):
    product_id: int
    product_name: str | None = None
    quantity: int = 1
    price: Decimal = Decimal("0")
    ice_level: str | None = None
    sugar_level: str | None = None
    add_ons: list[AddOn] = Field(default_factory=list)


class OrderSubmission(BaseModel):
    lines: list[CartLine]
    total: Decimal
    order_time: datetime | None = None
    member_id: int
    employee_id: int


class OrderConfirmation(BaseModel):
    order_id: int
    member_id: int
    employee_id: int
    order_time: datetime
    order_status: str
    total: Decimal
    items: list[dict[str, Any]]
    unapplied_stock: list[int] = Field(default_factory=list)

    def order_payload(self) -> dict:
        return self.model_dump(exclude={"unapplied_stock"})


# ---- parsing ------------------------------------------------------------------

def _to_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _to_decimal(value) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    try:
        d = Decimal(value.strip())
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def _pick(mods: dict, *keys) -> str | None:
    # iceLevel / ice_level 둘 다 허용, 빈 문자열은 NULL
    for k in keys:
        v = mods.get(k)
        if v not in (None, ""):
            return str(v)
    return None


def _parse_timestamp(value) -> datetime | None:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise InvalidOrder("timestamp must be an ISO-8601 string")
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise InvalidOrder(f"Invalid timestamp: {value}") from None


def _to_price(n: int, value) -> Decimal:
    # 파싱 안 되는 가격은 0, 나머지는 컬럼 스케일(Numeric(10, 2))로 반올림
    d = _to_decimal(value) or Decimal("0")
    if abs(d) >= MAX_PRICE:
        raise InvalidOrder(f"Item {n}: price out of range")
    return d.quantize(PRICE_SCALE, rounding=ROUND_HALF_UP)


def _parse_add_on(n: int, raw) -> AddOn:
    if not isinstance(raw, dict):
        raise InvalidOrder(f"Item {n}: add-on must be an object")
    product_id = _to_int(raw.get("product_id"))
    if product_id is None:
        raise InvalidOrder(f"Item {n}: add-on product_id must be an integer")
    return AddOn(product_id=product_id, price=_to_price(n, raw.get("price")))


def _parse_line(n: int, raw) -> CartLine:
    if not isinstance(raw, dict):
        raise InvalidOrder(f"Item {n} must be an object")

    product_id = _to_int(raw.get("product_id"))
    if product_id is None:
        raise InvalidOrder(f"Item {n}: product_id must be an integer")

    quantity = 1
    if raw.get("quantity") not in (None, ""):
        quantity = _to_int(raw.get("quantity"))
        if quantity is None:
            raise InvalidOrder(f"Item {n}: quantity must be an integer")
        if quantity > MAX_LINE_QUANTITY:
            raise InvalidOrder(f"Item {n}: quantity must be at most {MAX_LINE_QUANTITY}")

    product_name = raw.get("product_name")
    if product_name is not None and not isinstance(product_name, str):
        raise InvalidOrder(f"Item {n}: product_name must be a string")

    mods = raw.get("modifications") or {}
    if not isinstance(mods, dict):
        raise InvalidOrder(f"Item {n}: modifications must be an object")
    add_ons = mods.get("addOns", mods.get("add_ons")) or []
    if not isinstance(add_ons, list):
        raise InvalidOrder(f"Item {n}: addOns must be a list")

    return CartLine(
        product_id=product_id,
        product_name=product_name,
        quantity=max(1, quantity),
        price=_to_price(n, raw.get("price")),
        ice_level=_pick(mods, "iceLevel", "ice_level"),
        sugar_level=_pick(mods, "sugarLevel", "sugar_level"),
        add_ons=[_parse_add_on(n, a) for a in add_ons],
    )


def parse_submission(payload) -> OrderSubmission:
    """Validate a raw request body. Raises before anything touches the store."""
    if not isinstance(payload, dict):
        raise InvalidOrder("Order must contain at least one item")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise InvalidOrder("Order must contain at least one item")

    total = _to_decimal(payload.get("total"))
    if total is None:
        raise InvalidOrder("Total must be a valid number")

    ids = {}
    for field in ("member_id", "employee_id"):
        if payload.get(field) is None:
            raise MissingField(field)
        ids[field] = _to_int(payload[field])
        if ids[field] is None:
            raise InvalidType(field)

    return OrderSubmission(
        lines=[_parse_line(n, raw) for n, raw in enumerate(items, start=1)],
        total=total,
        order_time=_parse_timestamp(payload.get("timestamp")),
        **ids,
    )


# ---- transaction --------------------------------------------------------------

def item_to_dict(item: Item) -> dict:
    return {
        "item_id": item.item_id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "price": item.price,
        "sugar_level": item.sugar_level,
        "ice_level": item.ice_level,
        "group_id": item.group_id,
    }


def _insert_item(db: Session, order_id: int, product_id: int, price: Decimal, group_id: int,
                 sugar_level: str | None = None, ice_level: str | None = None) -> Item:
    item = Item(
        order_id=order_id,
        product_id=product_id,
        price=price,
        sugar_level=sugar_level,
        ice_level=ice_level,
        group_id=group_id,
    )
    db.add(item)
    db.flush()
    return item


def decrement_stock(db: Session, product_id: int, quantity: int) -> bool:
    """
    stock = stock - quantity, only WHERE stock >= quantity.
    Returns False when the row did not match (insufficient or untracked stock).
    """
    result = db.execute(
        update(Product)
        .where(Product.product_id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _rollback(db: Session):
    try:
        db.rollback()
    except Exception:
        # 원래 오류를 그대로 보고하기 위해 롤백 실패는 로그만 남김
        logger.exception("[ORDER] rollback failed")


def submit_order(db: Session, submission: OrderSubmission, strict_stock: bool = False) -> OrderConfirmation:
    """
    Persist one order with its grouped items and decrement stock, atomically.

    A cart line of quantity N becomes N groups (one main item + its add-ons each);
    group ids are dense from 1 across the cart. Stock is decremented once per line
    for the main product and once per add-on, by the line quantity. A decrement that
    does not match is skipped unless strict_stock is set, in which case the whole
    order is rolled back with StockInsufficient.
    """
    started = time.perf_counter()
    try:
        order = Order(
            member_id=submission.member_id,
            employee_id=submission.employee_id,
            order_time=submission.order_time or datetime.now(timezone.utc),
            order_status=ORDER_STATUS_COMPLETE,
        )
        db.add(order)
        db.flush()

        inserted: list[Item] = []
        unapplied: list[int] = []
        group_id = 0

        for line in submission.lines:
            quantity = max(1, line.quantity)
            for _ in range(quantity):
                group_id += 1
                inserted.append(_insert_item(
                    db, order.order_id, line.product_id, line.price, group_id,
                    sugar_level=line.sugar_level, ice_level=line.ice_level,
                ))
                for add_on in line.add_ons:
                    inserted.append(_insert_item(db, order.order_id, add_on.product_id, add_on.price, group_id))

            for product_id in [line.product_id, *(a.product_id for a in line.add_ons)]:
                if decrement_stock(db, product_id, quantity):
                    continue
                stock = db.scalar(select(Product.stock).where(Product.product_id == product_id))
                if stock is None:
                    logger.debug(f"[STOCK] product={product_id} untracked, skip")
                    continue
                if strict_stock:
                    raise StockInsufficient(product_id, quantity, stock)
                logger.warning(f"[STOCK] product={product_id} requested={quantity} available={stock} -> not decremented")
                unapplied.append(product_id)

        confirmation = OrderConfirmation(
            order_id=order.order_id,
            member_id=order.member_id,
            employee_id=order.employee_id,
            order_time=order.order_time,
            order_status=order.order_status,
            total=submission.total,
            items=[item_to_dict(it) for it in inserted],
            unapplied_stock=unapplied,
        )
        db.commit()
    except OrderError:
        _rollback(db)
        raise
    except Exception as e:
        _rollback(db)
        logger.exception("[ORDER] transaction failed, rolled back")
        raise TransactionFailure("Failed to place order") from e
    finally:
        elapsed = time.perf_counter() - started
        if elapsed > SLOW_TRANSACTION_SECONDS:
            logger.warning(f"[ORDER] transaction held the session for {elapsed:.1f}s")

    logger.info(
        f"[ORDER] id={confirmation.order_id} member={confirmation.member_id} "
        f"employee={confirmation.employee_id} items={len(confirmation.items)} groups={group_id}"
    )
    return confirmation
