"""
Subscription plan and user subscription persistence.
"""

import json
from datetime import datetime
from typing import List, Optional

from ai_quota_guard.core.errors import NotFoundError

from .db import DEFAULT_DB_PATH, from_db_timestamp, get_connection, to_db_timestamp
from .models import SubscriptionPlan, SubscriptionStatus, UserSubscription


class BillingRepository:
    """Repository for subscription plans and per-user subscriptions.

    Each user has at most one subscription row; renewals and cancellations
    update it in place.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def upsert_plan(self, plan: SubscriptionPlan) -> int:
        """Insert or replace a plan by name and return its id."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO subscription_plans
                (name, display_name, price, billing_cycle, features, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (name) DO UPDATE SET
                    display_name = excluded.display_name,
                    price = excluded.price,
                    billing_cycle = excluded.billing_cycle,
                    features = excluded.features,
                    is_active = excluded.is_active
            """, (
                plan.name,
                plan.display_name,
                plan.price,
                plan.billing_cycle,
                json.dumps(plan.limits, sort_keys=True),
                1 if plan.is_active else 0
            ))
            conn.commit()
            row = conn.execute(
                "SELECT id FROM subscription_plans WHERE name = ?", (plan.name,)
            ).fetchone()
            return row[0]
        finally:
            conn.close()

    def get_plan(self, name: str) -> Optional[SubscriptionPlan]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT id, name, display_name, price, billing_cycle, features, is_active
                FROM subscription_plans WHERE name = ?
            """, (name,)).fetchone()
            return _row_to_plan(row) if row else None
        finally:
            conn.close()

    def list_plans(self, active_only: bool = True) -> List[SubscriptionPlan]:
        """List plans ordered by price (cheapest first)."""
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT id, name, display_name, price, billing_cycle, features, is_active
                FROM subscription_plans
            """
            if active_only:
                query += " WHERE is_active = 1"
            query += " ORDER BY price, name"
            return [_row_to_plan(row) for row in conn.execute(query).fetchall()]
        finally:
            conn.close()

    def get_subscription(self, user_id: str) -> Optional[UserSubscription]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("""
                SELECT s.id, s.user_id, p.name, s.status, s.current_period_start,
                       s.current_period_end, s.external_subscription_id,
                       s.external_customer_id
                FROM user_subscriptions s
                JOIN subscription_plans p ON p.id = s.plan_id
                WHERE s.user_id = ?
            """, (user_id,)).fetchone()
            if row is None:
                return None
            return UserSubscription(
                id=row[0],
                user_id=row[1],
                plan_name=row[2],
                status=SubscriptionStatus(row[3]),
                current_period_start=from_db_timestamp(row[4]),
                current_period_end=from_db_timestamp(row[5]),
                external_subscription_id=row[6],
                external_customer_id=row[7]
            )
        finally:
            conn.close()

    def upsert_subscription(
        self,
        subscription: UserSubscription,
        updated_at: datetime
    ) -> None:
        """Create the user's subscription row or overwrite the existing one.

        Raises:
            NotFoundError: If the subscription references an unknown plan
        """
        conn = get_connection(self.db_path)
        try:
            plan_row = conn.execute(
                "SELECT id FROM subscription_plans WHERE name = ?",
                (subscription.plan_name,)
            ).fetchone()
            if plan_row is None:
                raise NotFoundError(f"Unknown plan: {subscription.plan_name}")

            conn.execute("""
                INSERT INTO user_subscriptions
                (user_id, plan_id, status, current_period_start, current_period_end,
                 external_subscription_id, external_customer_id, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET
                    plan_id = excluded.plan_id,
                    status = excluded.status,
                    current_period_start = excluded.current_period_start,
                    current_period_end = excluded.current_period_end,
                    external_subscription_id = excluded.external_subscription_id,
                    external_customer_id = excluded.external_customer_id,
                    updated_at = excluded.updated_at
            """, (
                subscription.user_id,
                plan_row[0],
                subscription.status.value,
                to_db_timestamp(subscription.current_period_start),
                to_db_timestamp(subscription.current_period_end),
                subscription.external_subscription_id,
                subscription.external_customer_id,
                to_db_timestamp(updated_at)
            ))
            conn.commit()
        finally:
            conn.close()

    def set_subscription_status(
        self,
        user_id: str,
        status: SubscriptionStatus,
        updated_at: datetime
    ) -> bool:
        """Change the status of a user's subscription.

        Returns:
            False if the user has no subscription row
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                UPDATE user_subscriptions SET status = ?, updated_at = ?
                WHERE user_id = ?
            """, (status.value, to_db_timestamp(updated_at), user_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


def _row_to_plan(row: tuple) -> SubscriptionPlan:
    return SubscriptionPlan(
        id=row[0],
        name=row[1],
        display_name=row[2],
        price=row[3],
        billing_cycle=row[4],
        limits=json.loads(row[5]),
        is_active=bool(row[6])
    )
