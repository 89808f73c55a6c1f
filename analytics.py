"""
Sales analytics for the admin dashboard.

All figures are aggregation pipelines over the order collection and only
count completed orders. Exports cover every order and are not paginated.
"""

import io
import csv
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from database import db, utcnow

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["Order ID", "User Name", "User Email", "Total Amount", "Total Profit", "Status", "Manual Sale", "Created At"]


def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _completed_totals(since: datetime) -> Dict[str, Any]:
    rows = list(db["order"].aggregate([
        {"$match": {"status": "completed", "created_at": {"$gte": since}}},
        {"$group": {
            "_id": None,
            "total_sales": {"$sum": "$total_amount"},
            "total_profit": {"$sum": "$total_profit"},
            "order_count": {"$sum": 1},
        }},
    ]))
    if not rows:
        return {"total_sales": 0, "total_profit": 0, "order_count": 0}
    row = rows[0]
    return {
        "total_sales": round(row["total_sales"], 2),
        "total_profit": round(row["total_profit"], 2),
        "order_count": row["order_count"],
    }


def daily_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    return _completed_totals(_midnight(now or utcnow()))


def monthly_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    return _completed_totals(_midnight(now or utcnow()).replace(day=1))


def top_products(limit: int = 10) -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": {"status": "completed"}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "total_quantity": {"$sum": "$items.quantity"},
            "total_sales": {"$sum": "$items.subtotal"},
        }},
        {"$lookup": {"from": "product", "localField": "_id", "foreignField": "_id", "as": "product"}},
        {"$unwind": "$product"},
        {"$sort": {"total_quantity": -1}},
        {"$limit": limit},
    ]
    result = []
    for row in db["order"].aggregate(pipeline):
        result.append({
            "product_id": row["_id"],
            "name": row["product"].get("name"),
            "kind": row["product"].get("kind", "unit"),
            "total_quantity": row["total_quantity"],
            "total_sales": round(row["total_sales"], 2),
        })
    return result


def revenue_over_time(days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Exactly `days` entries ending today, oldest first, zero for days without sales."""
    today = _midnight(now or utcnow())
    start = today - timedelta(days=days - 1)
    rows = db["order"].aggregate([
        {"$match": {"status": "completed", "created_at": {"$gte": start}}},
        {"$group": {
            "_id": {
                "year": {"$year": "$created_at"},
                "month": {"$month": "$created_at"},
                "day": {"$dayOfMonth": "$created_at"},
            },
            "revenue": {"$sum": "$total_amount"},
            "profit": {"$sum": "$total_profit"},
            "orders": {"$sum": 1},
        }},
    ])
    by_day = {(r["_id"]["year"], r["_id"]["month"], r["_id"]["day"]): r for r in rows}

    series = []
    for i in range(days):
        day = start + timedelta(days=i)
        hit = by_day.get((day.year, day.month, day.day))
        series.append({
            "date": day.strftime("%Y-%m-%d"),
            "revenue": round(hit["revenue"], 2) if hit else 0,
            "profit": round(hit["profit"], 2) if hit else 0,
            "orders": hit["orders"] if hit else 0,
        })
    return series


def sales_by_category() -> List[Dict[str, Any]]:
    pipeline = [
        {"$match": {"status": "completed"}},
        {"$unwind": "$items"},
        {"$project": {
            "product_id": "$items.product_id",
            "quantity": "$items.quantity",
            "subtotal": "$items.subtotal",
        }},
        {"$lookup": {"from": "product", "localField": "product_id", "foreignField": "_id", "as": "product"}},
        {"$unwind": "$product"},
        {"$group": {
            "_id": "$product.category_id",
            "total_quantity": {"$sum": "$quantity"},
            "total_sales": {"$sum": "$subtotal"},
        }},
        {"$lookup": {"from": "category", "localField": "_id", "foreignField": "_id", "as": "category"}},
        {"$unwind": "$category"},
        {"$sort": {"total_sales": -1}},
    ]
    return [
        {
            "category_id": row["_id"],
            "category_name": row["category"].get("name"),
            "total_quantity": row["total_quantity"],
            "total_sales": round(row["total_sales"], 2),
        }
        for row in db["order"].aggregate(pipeline)
    ]


def admin_stats() -> Dict[str, Any]:
    lifetime = list(db["order"].aggregate([
        {"$match": {"status": "completed"}},
        {"$group": {"_id": None, "revenue": {"$sum": "$total_amount"}, "profit": {"$sum": "$total_profit"}}},
    ]))
    return {
        "total_users": db["user"].count_documents({}),
        "active_products": db["product"].count_documents({"is_active": True}),
        "total_categories": db["category"].count_documents({}),
        "total_orders": db["order"].count_documents({}),
        "pending_orders": db["order"].count_documents({"status": "pending"}),
        "total_revenue": round(lifetime[0]["revenue"], 2) if lifetime else 0,
        "total_profit": round(lifetime[0]["profit"], 2) if lifetime else 0,
    }


# ------------- Exports -------------

def export_rows(orders: List[Dict[str, Any]]) -> Iterator[List[Any]]:
    for o in orders:
        user = o.get("user") or {}
        created = o.get("created_at")
        yield [
            str(o["_id"]),
            user.get("name") or "N/A",
            user.get("email") or "N/A",
            f"{float(o.get('total_amount', 0)):.2f}",
            f"{float(o.get('total_profit', 0)):.2f}",
            o.get("status"),
            "yes" if o.get("is_manual_sale") else "no",
            created.isoformat() if isinstance(created, datetime) else "",
        ]


def iter_orders_csv(orders: List[Dict[str, Any]]) -> Iterator[str]:
    """Yield the CSV report one line at a time."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    for row in export_rows(orders):
        writer.writerow(row)
        yield buf.getvalue()
        buf.seek(0)
        buf.truncate(0)
    tail = buf.getvalue()
    if tail:
        yield tail


def orders_pdf(orders: List[Dict[str, Any]]) -> bytes:
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    margin = 50
    line_height = 15

    pdf.setTitle("Orders Report")
    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawCentredString(width / 2, height - margin, "Orders Report")
    y = height - margin - 2 * line_height

    for i, row in enumerate(export_rows(orders), start=1):
        block = [
            f"Order #{i}: {row[0]}",
            f"User: {row[1]}",
            f"Email: {row[2]}",
            f"Total Amount: {row[3]}",
            f"Total Profit: {row[4]}",
            f"Status: {row[5]}" + (" (manual sale)" if row[6] == "yes" else ""),
            f"Created At: {row[7]}",
        ]
        if y - line_height * (len(block) + 1) < margin:
            pdf.showPage()
            y = height - margin
        for j, text in enumerate(block):
            pdf.setFont("Helvetica-Bold" if j == 0 else "Helvetica", 12 if j == 0 else 11)
            pdf.drawString(margin, y, text)
            y -= line_height
        y -= line_height

    pdf.showPage()
    pdf.save()
    return buf.getvalue()
