import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from .query_gate import apply_row_ceiling

logger = logging.getLogger("uvicorn.error")

TOP_PRODUCTS_MAX = 50
USER_GROWTH_MONTHS = 24

ANALYTICS_SCHEMA = """
CREATE TABLE IF NOT EXISTS analytics_users(
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    first_name TEXT,
    last_name TEXT,
    signup_date TEXT NOT NULL,
    last_login_date TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    subscription_tier TEXT DEFAULT 'free'
);
CREATE TABLE IF NOT EXISTS sales(
    id TEXT PRIMARY KEY,
    user_id TEXT REFERENCES analytics_users(id),
    product_name TEXT NOT NULL,
    product_category TEXT,
    amount REAL NOT NULL,
    currency TEXT NOT NULL DEFAULT 'USD',
    sale_date TEXT NOT NULL,
    payment_method TEXT,
    region TEXT,
    sales_rep TEXT
);
CREATE TABLE IF NOT EXISTS user_events(
    id TEXT PRIMARY KEY,
    user_id TEXT REFERENCES analytics_users(id),
    event_type TEXT NOT NULL,
    event_category TEXT,
    event_data TEXT,
    timestamp TEXT NOT NULL,
    session_id TEXT,
    page TEXT
);
CREATE TABLE IF NOT EXISTS product_performance(
    id TEXT PRIMARY KEY,
    product_name TEXT NOT NULL,
    category TEXT,
    views_count INTEGER NOT NULL DEFAULT 0,
    purchases_count INTEGER NOT NULL DEFAULT 0,
    total_revenue REAL NOT NULL DEFAULT 0,
    last_updated TEXT,
    rating REAL,
    reviews_count INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS marketing_campaigns(
    id TEXT PRIMARY KEY,
    campaign_name TEXT NOT NULL,
    campaign_type TEXT,
    start_date TEXT NOT NULL,
    end_date TEXT,
    budget REAL,
    spend REAL DEFAULT 0,
    impressions INTEGER DEFAULT 0,
    clicks INTEGER DEFAULT 0,
    conversions INTEGER DEFAULT 0,
    revenue REAL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1
);
"""

SAMPLE_USERS = [
    ("john.doe@example.com", "John", "Doe", "2024-01-15", "pro"),
    ("jane.smith@example.com", "Jane", "Smith", "2024-02-20", "enterprise"),
    ("bob.wilson@example.com", "Bob", "Wilson", "2024-03-10", "free"),
    ("alice.brown@example.com", "Alice", "Brown", "2024-04-05", "pro"),
]
SAMPLE_SALES = [
    (0, "Pro Subscription", "Software", 29.99, "2024-01-20", "credit_card", "North America", "Sarah Johnson"),
    (1, "Enterprise License", "Software", 299.99, "2024-02-25", "bank_transfer", "Europe", "Mike Davis"),
    (3, "Pro Subscription", "Software", 29.99, "2024-04-10", "paypal", "North America", "Sarah Johnson"),
    (0, "Analytics Add-on", "Add-ons", 49.99, "2024-05-02", "credit_card", "North America", "Mike Davis"),
]
SAMPLE_PRODUCTS = [
    ("Pro Subscription", "Software", 1500, 120, 3598.80, 4.5, 89),
    ("Enterprise License", "Software", 800, 25, 7499.75, 4.8, 23),
    ("Analytics Add-on", "Add-ons", 600, 45, 2249.55, 4.2, 31),
]
SAMPLE_EVENTS = [
    (0, "page_view", "navigation", "2024-05-01T10:00:00Z", "/dashboard"),
    (1, "button_click", "engagement", "2024-05-01T11:30:00Z", "/pricing"),
    (2, "signup", "conversion", "2024-05-02T09:15:00Z", "/register"),
]
SAMPLE_CAMPAIGNS = [
    ("Spring Sale 2024", "email", "2024-03-01", "2024-03-31", 5000.0, 4200.0, 50000, 2500, 180, 18000.0),
    ("Social Media Boost", "social", "2024-04-01", "2024-04-30", 3000.0, 2800.0, 75000, 2100, 145, 14500.0),
]


class AnalyticsDatabase:
    """Analytics store queried by the database tool."""

    def __init__(self, path: str, row_ceiling: int = 100):
        self.path = path
        self.row_ceiling = row_ceiling

    async def init(self) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(ANALYTICS_SCHEMA)
            await db.commit()

    async def _fetch(
        self, query: str, params: Tuple[Any, ...] = (), max_rows: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            if max_rows is None:
                rows = await cursor.fetchall()
            else:
                rows = await cursor.fetchmany(max_rows)
            await cursor.close()
            await db.commit()
            return [dict(row) for row in rows]

    async def seed_sample_data(self) -> Dict[str, Any]:
        await self.init()
        existing = await self._fetch("SELECT id FROM analytics_users LIMIT 1")
        if existing:
            return {"message": "Sample data already exists"}
        user_ids = [uuid.uuid4().hex for _ in SAMPLE_USERS]
        async with aiosqlite.connect(self.path) as db:
            await db.executemany(
                "INSERT INTO analytics_users(id, email, first_name, last_name, signup_date, subscription_tier) "
                "VALUES (?,?,?,?,?,?)",
                [(uid, *row) for uid, row in zip(user_ids, SAMPLE_USERS)],
            )
            await db.executemany(
                "INSERT INTO sales(id, user_id, product_name, product_category, amount, sale_date, payment_method, region, sales_rep) "
                "VALUES (?,?,?,?,?,?,?,?,?)",
                [(uuid.uuid4().hex, user_ids[idx], *rest) for idx, *rest in SAMPLE_SALES],
            )
            await db.executemany(
                "INSERT INTO product_performance(id, product_name, category, views_count, purchases_count, total_revenue, rating, reviews_count) "
                "VALUES (?,?,?,?,?,?,?,?)",
                [(uuid.uuid4().hex, *row) for row in SAMPLE_PRODUCTS],
            )
            await db.executemany(
                "INSERT INTO user_events(id, user_id, event_type, event_category, timestamp, page) VALUES (?,?,?,?,?,?)",
                [(uuid.uuid4().hex, user_ids[idx], *rest) for idx, *rest in SAMPLE_EVENTS],
            )
            await db.executemany(
                "INSERT INTO marketing_campaigns(id, campaign_name, campaign_type, start_date, end_date, budget, spend, impressions, clicks, conversions, revenue) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?)",
                [(uuid.uuid4().hex, *row) for row in SAMPLE_CAMPAIGNS],
            )
            await db.commit()
        return {"message": "Sample data created successfully"}

    async def execute_query(self, query: str) -> Dict[str, Any]:
        limited = apply_row_ceiling(query, self.row_ceiling)
        try:
            data = await self._fetch(limited, max_rows=self.row_ceiling)
        except Exception as exc:
            logger.warning("Analytics query failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "data": data, "rowCount": len(data)}

    async def sales_metrics(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict[str, Any]:
        query = (
            "SELECT COUNT(id) AS total_sales, SUM(amount) AS total_revenue, AVG(amount) AS avg_sale_amount FROM sales"
        )
        params: Tuple[Any, ...] = ()
        if start_date and end_date:
            query += " WHERE sale_date >= ? AND sale_date <= ?"
            params = (start_date, end_date)
        try:
            rows = await self._fetch(query, params)
        except Exception as exc:
            logger.warning("Sales metrics query failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "data": rows[0] if rows else {}}

    async def top_products(self, limit: int = 10) -> Dict[str, Any]:
        limit = max(1, min(int(limit), TOP_PRODUCTS_MAX))
        try:
            rows = await self._fetch(
                "SELECT * FROM product_performance ORDER BY total_revenue DESC LIMIT ?", (limit,)
            )
        except Exception as exc:
            logger.warning("Top products query failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "data": rows}

    async def user_growth(self) -> Dict[str, Any]:
        try:
            rows = await self._fetch(
                "SELECT strftime('%Y-%m', signup_date) AS signup_month, COUNT(id) AS user_count "
                "FROM analytics_users GROUP BY signup_month ORDER BY signup_month ASC LIMIT ?",
                (USER_GROWTH_MONTHS,),
            )
        except Exception as exc:
            logger.warning("User growth query failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "data": rows}
