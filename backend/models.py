from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, TIMESTAMP, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base

ORDER_STATUS_COMPLETE = "complete"   # 키오스크 주문은 생성 즉시 complete


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock IS NULL OR stock >= 0", name="ck_products_stock_nonneg"),)

    product_id: Mapped[int] = mapped_column(primary_key=True)
    product_name: Mapped[str] = mapped_column(String(100))
    category: Mapped[str | None] = mapped_column(String(50))     # Drink | Add-on | Side | Supply
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    stock: Mapped[int | None] = mapped_column(Integer)           # NULL = 재고 추적 안 함


class Order(Base):
    __tablename__ = "orders"
    order_id: Mapped[int] = mapped_column(primary_key=True)
    member_id: Mapped[int] = mapped_column(Integer, default=0)     # 0 = guest
    employee_id: Mapped[int] = mapped_column(Integer, default=0)   # 0 = kiosk
    order_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    order_status: Mapped[str] = mapped_column(String(20), default=ORDER_STATUS_COMPLETE)

    items: Mapped[list["Item"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by=lambda: [Item.group_id, Item.item_id],
    )


class Item(Base):
    __tablename__ = "items"
    item_id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.product_id"))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)   # 주문 시점 가격 스냅샷
    sugar_level: Mapped[str | None] = mapped_column(String(30))          # add-on 은 NULL
    ice_level: Mapped[str | None] = mapped_column(String(30))
    group_id: Mapped[int] = mapped_column(Integer)                      # 메인 + add-on 묶음

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()
