from decimal import Decimal

from .db import SessionLocal
from .models import Product

# (name, category, price, cost, stock) - stock None 은 재고 추적 안 함
PRODUCTS = [
    ("Classic Milk Tea", "Drink", "4.50", "2.00", 50),
    ("Taro Milk Tea", "Drink", "4.75", "2.25", 45),
    ("Matcha Milk Tea", "Drink", "5.00", "2.50", 40),
    ("Wintermelon Tea", "Drink", "4.25", "1.75", 3),
    ("Thai Tea", "Drink", "4.75", "2.00", 35),
    ("Strawberry Green Tea", "Drink", "4.50", "2.00", 30),
    ("Honey Lemonade", "Drink", "4.00", "1.50", 25),
    ("Passionfruit Tea", "Drink", "4.25", "1.75", 20),
    ("Brown Sugar Milk Tea", "Drink", "5.25", "2.75", 55),
    ("Boba (Add-on)", "Add-on", "0.75", "0.25", 500),
    ("Mango Boba (Add-on)", "Add-on", "0.75", "0.25", 400),
    ("Lychee Jelly (Add-on)", "Add-on", "0.75", "0.30", 300),
    ("Aloe Vera (Add-on)", "Add-on", "0.75", "0.30", 250),
    ("Red Bean (Add-on)", "Add-on", "0.75", "0.20", 200),
    ("Boba (Bowl)", "Side", "2.00", "0.75", 100),
    ("Mango Boba (Bowl)", "Side", "2.00", "0.75", 80),
    ("Cups", "Supply", "0.00", "0.05", None),
]

def seed():
    db = SessionLocal()
    try:
        if db.query(Product).count() > 0:
            return
        for name, category, price, cost, stock in PRODUCTS:
            db.add(Product(product_name=name, category=category, price=Decimal(price), cost=Decimal(cost), stock=stock))
        db.commit()
    finally:
        db.close()

if __name__ == "__main__":
    seed()
