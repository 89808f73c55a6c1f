import csv
import io
from datetime import datetime, timedelta

import analytics
from conftest import make_category, make_product
from database import create_document, utcnow

NOW = datetime(2024, 3, 15, 12, 0)


def make_order(items, status="completed", created_at=None, user=None, manual=False):
    lines = [
        {
            "product_id": product["_id"],
            "name": product["name"],
            "quantity": qty,
            "price_per_unit": product["price"],
            "subtotal": product["price"] * qty,
            "profit": (product["price"] - product["purchase_price"]) * qty,
        }
        for product, qty in items
    ]
    return create_document("order", {
        "user_id": user["_id"] if user else None,
        "items": lines,
        "total_amount": sum(line["subtotal"] for line in lines),
        "total_profit": sum(line["profit"] for line in lines),
        "status": status,
        "is_manual_sale": manual,
        "stock_restored": False,
        "created_at": created_at or utcnow(),
    })


def test_daily_and_monthly_totals_count_completed_orders(category):
    product = make_product(category, price=100, purchase_price=60)
    make_order([(product, 1)], created_at=NOW.replace(hour=9))
    make_order([(product, 2)], created_at=datetime(2024, 3, 2))
    make_order([(product, 4)], created_at=datetime(2024, 2, 28))
    make_order([(product, 8)], status="pending", created_at=NOW)

    assert analytics.daily_stats(NOW) == {"total_sales": 100, "total_profit": 40, "order_count": 1}
    assert analytics.monthly_stats(NOW) == {"total_sales": 300, "total_profit": 120, "order_count": 2}


def test_stats_are_zero_without_orders():
    assert analytics.daily_stats(NOW) == {"total_sales": 0, "total_profit": 0, "order_count": 0}


def test_revenue_over_time_fills_every_day(category):
    product = make_product(category, price=50, purchase_price=20)
    make_order([(product, 1)], created_at=NOW - timedelta(days=2))
    make_order([(product, 3)], created_at=NOW - timedelta(days=2, hours=1))
    make_order([(product, 1)], created_at=NOW - timedelta(days=40))

    series = analytics.revenue_over_time(7, now=NOW)
    assert len(series) == 7
    assert [d["date"] for d in series] == [f"2024-03-{day:02d}" for day in range(9, 16)]
    hit = series[4]
    assert hit == {"date": "2024-03-13", "revenue": 200, "profit": 120, "orders": 2}
    assert all(d["revenue"] == 0 and d["orders"] == 0 for d in series if d is not hit)


def test_revenue_over_time_route_defaults_to_thirty_days(client, admin_headers):
    data = client.get("/api/analytics/revenue-over-time", headers=admin_headers).json()["data"]
    assert len(data) == 30
    assert data == sorted(data, key=lambda d: d["date"])
    assert data[-1]["date"] == utcnow().strftime("%Y-%m-%d")

    data = client.get("/api/analytics/revenue-over-time", params={"days": 5}, headers=admin_headers).json()["data"]
    assert len(data) == 5


def test_top_products_and_sales_by_category(client, admin_headers):
    grains = make_category("Grains")
    dairy = make_category("Dairy")
    rice = make_product(grains, name="Rice", price=60, purchase_price=50)
    oats = make_product(grains, name="Oats", price=30, purchase_price=20)
    milk = make_product(dairy, name="Milk", price=25, purchase_price=20)
    make_order([(rice, 1), (milk, 5)])
    make_order([(oats, 2), (milk, 1)])
    make_order([(rice, 9)], status="pending")

    top = client.get("/api/analytics/top-products", params={"limit": 2}, headers=admin_headers).json()["top_products"]
    assert [(p["name"], p["total_quantity"]) for p in top] == [("Milk", 6), ("Oats", 2)]
    assert top[0]["total_sales"] == 150

    data = client.get("/api/analytics/sales-by-category", headers=admin_headers).json()["data"]
    assert [(d["category_name"], d["total_sales"]) for d in data] == [("Dairy", 150), ("Grains", 120)]
    assert data[0]["total_quantity"] == 6


def test_admin_stats(client, admin, admin_headers, category):
    product = make_product(category, price=10, purchase_price=4)
    make_product(category, is_active=False)
    make_order([(product, 3)])
    make_order([(product, 1)], status="pending")

    stats = client.get("/api/analytics/admin-stats", headers=admin_headers).json()["stats"]
    assert stats == {
        "total_users": 1,
        "active_products": 1,
        "total_categories": 1,
        "total_orders": 2,
        "pending_orders": 1,
        "total_revenue": 30,
        "total_profit": 18,
    }


def test_csv_export(client, user, admin_headers, category):
    product = make_product(category, price=12.5, purchase_price=10)
    order_id = make_order([(product, 2)], user=user)
    make_order([(product, 1)], manual=True)

    res = client.get("/api/analytics/export/orders/csv", headers=admin_headers)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "orders_report.csv" in res.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(res.text)))
    assert rows[0] == analytics.EXPORT_COLUMNS
    assert len(rows) == 3
    by_id = {r[0]: r for r in rows[1:]}
    assert by_id[order_id][1:7] == [user["name"], user["email"], "25.00", "5.00", "completed", "no"]
    manual = [r for r in rows[1:] if r[0] != order_id][0]
    assert manual[1:3] == ["N/A", "N/A"]
    assert manual[6] == "yes"


def test_pdf_export(client, admin_headers, category):
    product = make_product(category)
    for _ in range(12):
        make_order([(product, 1)])
    res = client.get("/api/analytics/export/orders/pdf", headers=admin_headers)
    assert res.status_code == 200
    assert res.headers["content-type"] == "application/pdf"
    assert res.content.startswith(b"%PDF")


def test_analytics_are_admin_only(client, user_headers):
    for path in ("/api/analytics/daily", "/api/analytics/admin-stats", "/api/analytics/export/orders/csv"):
        assert client.get(path, headers=user_headers).status_code == 403
    assert client.get("/api/analytics/monthly").status_code == 401


def test_period_totals_are_rounded(category):
    dime = make_product(category, price=0.1, purchase_price=0.0)
    two_dimes = make_product(category, price=0.2, purchase_price=0.0)
    make_order([(dime, 1)], created_at=NOW)
    make_order([(two_dimes, 1)], created_at=NOW)

    stats = analytics.daily_stats(NOW)
    assert stats["total_sales"] == 0.3
    assert stats["total_profit"] == 0.3
