"""Initial schema: accounts, providers, zones, bookings, reviews, marketplace, places.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _enum():
    # Enums are stored as plain strings (native_enum=False in the models)
    return sa.String(32)


def _timestamps(updated: bool = True) -> list:
    cols = [sa.Column("created_at", sa.DateTime, nullable=True)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime, nullable=True))
    return cols


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("first_name", sa.String(80), nullable=False),
        sa.Column("last_name", sa.String(80), nullable=False),
        sa.Column("role", _enum(), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("subscription_tier", _enum(), nullable=True),
        sa.Column("subscription_expires_at", sa.DateTime, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # ── service_zones ─────────────────────────────────────────────────
    op.create_table(
        "service_zones",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), unique=True, nullable=False),
        sa.Column("zone_type", _enum(), nullable=False),
        sa.Column("center_lat", sa.Float, nullable=False),
        sa.Column("center_lng", sa.Float, nullable=False),
        sa.Column("radius_km", sa.Float, nullable=True),
        sa.Column("boundary", sa.JSON, nullable=True),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("allow_inter_regional", sa.Boolean, nullable=False),
        sa.Column("inter_regional_fee", sa.Float, nullable=False),
        sa.Column("connected_zone_ids", sa.JSON, nullable=True),
        *_timestamps(),
    )

    # ── driver_profiles ───────────────────────────────────────────────
    op.create_table(
        "driver_profiles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), unique=True, nullable=False),
        sa.Column("role", _enum(), nullable=False),
        sa.Column("license_number", sa.String(64), nullable=True),
        sa.Column("vehicle_make", sa.String(64), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("vehicle_plate", sa.String(32), nullable=True),
        sa.Column("vehicle_color", sa.String(32), nullable=True),
        sa.Column("vehicle_type", sa.String(32), nullable=True),
        sa.Column("capabilities", sa.JSON, nullable=True),
        sa.Column("verification_status", _enum(), nullable=False),
        sa.Column("is_available", sa.Boolean, nullable=False),
        sa.Column("is_online", sa.Boolean, nullable=False),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("current_zone_id", sa.Integer, sa.ForeignKey("service_zones.id"), nullable=True),
        sa.Column("last_location_at", sa.DateTime, nullable=True),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("total_rides", sa.Integer, nullable=False),
        sa.Column("total_earnings", sa.Float, nullable=False),
        sa.Column("monthly_commission_due", sa.Float, nullable=False),
        sa.Column("day_booking_enabled", sa.Boolean, nullable=False),
        sa.Column("day_booking_rate", sa.Float, nullable=True),
        sa.Column("day_booking_min_hours", sa.Integer, nullable=False),
        sa.Column("day_booking_max_hours", sa.Integer, nullable=False),
        *_timestamps(),
    )
    # B-Tree index on the H3 cell for nearby-provider lookups
    op.create_index("idx_driver_profiles_cell", "driver_profiles", ["h3_cell"])
    op.create_index(
        "idx_driver_profiles_role_available",
        "driver_profiles",
        ["role", "is_available"],
    )

    # ── driver_service_zones ──────────────────────────────────────────
    op.create_table(
        "driver_service_zones",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("provider_id", sa.Integer, sa.ForeignKey("driver_profiles.id"), nullable=False),
        sa.Column("zone_id", sa.Integer, sa.ForeignKey("service_zones.id"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("is_primary", sa.Boolean, nullable=False),
        sa.Column("can_accept_inter_regional", sa.Boolean, nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("provider_id", "zone_id", name="uq_provider_zone"),
    )

    # ── stores / orders ───────────────────────────────────────────────
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("business_hours", sa.JSON, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_stores_owner", "stores", ["owner_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("in_stock", sa.Boolean, nullable=False),
        sa.Column("stock_quantity", sa.Integer, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_products_store", "products", ["store_id", "is_active"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(32), unique=True, nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("items", sa.JSON, nullable=True),
        sa.Column("subtotal", sa.Float, nullable=False),
        sa.Column("delivery_fee", sa.Float, nullable=False),
        sa.Column("total_amount", sa.Float, nullable=False),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("delivery_address", sa.String(255), nullable=True),
        sa.Column("delivery_lat", sa.Float, nullable=False),
        sa.Column("delivery_lng", sa.Float, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_orders_store_status", "orders", ["store_id", "status"])
    op.create_index("idx_orders_customer", "orders", ["customer_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_number", sa.String(32), unique=True, nullable=False),
        sa.Column("kind", _enum(), nullable=False),
        sa.Column("booking_type", _enum(), nullable=False),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("provider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=True),
        sa.Column("dropoff_lng", sa.Float, nullable=True),
        sa.Column("dropoff_address", sa.String(255), nullable=True),
        sa.Column("scheduled_at", sa.DateTime, nullable=True),
        sa.Column("ride_type", sa.String(20), nullable=True),
        sa.Column("estimated_distance_km", sa.Float, nullable=True),
        sa.Column("estimated_duration_min", sa.Float, nullable=True),
        sa.Column("estimated_price", sa.Float, nullable=True),
        sa.Column("surge_multiplier", sa.Float, nullable=True),
        sa.Column("final_price", sa.Float, nullable=True),
        sa.Column("actual_distance_km", sa.Float, nullable=True),
        sa.Column("platform_commission", sa.Float, nullable=True),
        sa.Column("provider_earning", sa.Float, nullable=True),
        sa.Column("origin_zone_id", sa.Integer, sa.ForeignKey("service_zones.id"), nullable=True),
        sa.Column("destination_zone_id", sa.Integer, sa.ForeignKey("service_zones.id"), nullable=True),
        sa.Column("is_inter_regional", sa.Boolean, nullable=False),
        sa.Column("inter_regional_fee", sa.Float, nullable=True),
        sa.Column("requires_approval", sa.Boolean, nullable=False),
        sa.Column("approved_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("service_data", sa.JSON, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column("dispatch_attempts", sa.Integer, nullable=False),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("cancelled_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("accepted_at", sa.DateTime, nullable=True),
        sa.Column("arrived_at", sa.DateTime, nullable=True),
        sa.Column("started_at", sa.DateTime, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column("cancelled_at", sa.DateTime, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_kind_status", "bookings", ["kind", "status"])
    op.create_index("idx_bookings_customer", "bookings", ["customer_id"])
    op.create_index("idx_bookings_provider", "bookings", ["provider_id"])

    # ── reviews ───────────────────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("reviewer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("receiver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id"), nullable=True),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("service_rating", sa.Integer, nullable=True),
        sa.Column("timeliness_rating", sa.Integer, nullable=True),
        sa.Column("cleanliness_rating", sa.Integer, nullable=True),
        sa.Column("communication_rating", sa.Integer, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "reviewer_id", name="uq_review_booking_reviewer"),
        sa.UniqueConstraint("store_id", "reviewer_id", name="uq_review_store_reviewer"),
    )
    op.create_index("idx_reviews_receiver", "reviews", ["receiver_id"])

    op.create_table(
        "booking_offers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("provider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("attempt", sa.Integer, nullable=False),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("decline_reason", sa.String(255), nullable=True),
        sa.Column("sent_at", sa.DateTime, nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=True),
        sa.Column("responded_at", sa.DateTime, nullable=True),
    )
    op.create_index("idx_offers_booking", "booking_offers", ["booking_id"])
    op.create_index(
        "idx_offers_provider_status", "booking_offers", ["provider_id", "status"]
    )

    # ── deliveries ────────────────────────────────────────────────────
    op.create_table(
        "deliveries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tracking_code", sa.String(32), unique=True, nullable=False),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=True),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("delivery_type", _enum(), nullable=False),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=True),
        sa.Column("recipient_name", sa.String(120), nullable=True),
        sa.Column("recipient_phone", sa.String(32), nullable=True),
        sa.Column("package_description", sa.String(255), nullable=True),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("delivery_fee", sa.Float, nullable=False),
        sa.Column("platform_commission", sa.Float, nullable=True),
        sa.Column("rider_earning", sa.Float, nullable=True),
        sa.Column("issues", sa.JSON, nullable=True),
        sa.Column("declined_by", sa.JSON, nullable=True),
        sa.Column("assigned_at", sa.DateTime, nullable=True),
        sa.Column("picked_up_at", sa.DateTime, nullable=True),
        sa.Column("delivered_at", sa.DateTime, nullable=True),
        sa.Column("cancelled_at", sa.DateTime, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_deliveries_status", "deliveries", ["status"])
    op.create_index("idx_deliveries_rider", "deliveries", ["rider_id"])
    op.create_index("idx_deliveries_customer", "deliveries", ["customer_id"])

    # ── tracking_updates / driver_earnings ────────────────────────────
    op.create_table(
        "tracking_updates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("delivery_id", sa.Integer, sa.ForeignKey("deliveries.id"), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("message", sa.String(255), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("idx_tracking_booking", "tracking_updates", ["booking_id"])
    op.create_index("idx_tracking_delivery", "tracking_updates", ["delivery_id"])

    op.create_table(
        "driver_earnings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("provider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("delivery_id", sa.Integer, sa.ForeignKey("deliveries.id"), nullable=True),
        sa.Column("gross_amount", sa.Float, nullable=False),
        sa.Column("commission", sa.Float, nullable=False),
        sa.Column("net_amount", sa.Float, nullable=False),
        sa.Column("week_starting", sa.Date, nullable=False),
        sa.Column("month_year", sa.String(7), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("idx_earnings_provider", "driver_earnings", ["provider_id"])

    # ── places ────────────────────────────────────────────────────────
    op.create_table(
        "place_categories",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(80), unique=True, nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("sort_order", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        "places",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("place_categories.id"), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("contact_phone", sa.String(32), nullable=True),
        sa.Column("website", sa.String(255), nullable=True),
        sa.Column("status", _enum(), nullable=False),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("rejection_reason", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_places_status", "places", ["status"])
    op.create_index("idx_places_category", "places", ["category_id"])

    op.create_table(
        "place_votes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("place_id", sa.Integer, sa.ForeignKey("places.id"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("is_positive", sa.Boolean, nullable=False),
        sa.Column(
            "suggested_category_id",
            sa.Integer,
            sa.ForeignKey("place_categories.id"),
            nullable=True,
        ),
        sa.Column("comment", sa.String(255), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("place_id", "user_id", name="uq_vote_place_user"),
        sa.UniqueConstraint("place_id", "session_id", name="uq_vote_place_session"),
    )

    # ── notifications / search / audit ────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", _enum(), nullable=False),
        sa.Column("title", sa.String(160), nullable=False),
        sa.Column("body", sa.String(500), nullable=False),
        sa.Column("data", sa.JSON, nullable=True),
        sa.Column("priority", _enum(), nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False),
        sa.Column("read_at", sa.DateTime, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "idx_notifications_user_read", "notifications", ["user_id", "is_read"]
    )

    op.create_table(
        "search_queries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("query", sa.String(160), nullable=False),
        sa.Column("search_type", sa.String(16), nullable=False),
        sa.Column("results_count", sa.Integer, nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("idx_search_queries_query", "search_queries", ["query"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("resource_type", sa.String(32), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("idx_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "search_queries",
        "notifications",
        "place_votes",
        "places",
        "place_categories",
        "driver_earnings",
        "tracking_updates",
        "deliveries",
        "reviews",
        "booking_offers",
        "bookings",
        "orders",
        "products",
        "stores",
        "driver_service_zones",
        "driver_profiles",
        "service_zones",
        "users",
    ):
        op.drop_table(table)
