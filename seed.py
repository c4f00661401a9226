"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - the Ghana regional service zones
  - one super admin, three customers and a store owner with a stocked store
  - one verified, online provider per provider role (around Accra)
  - place categories and a few approved places

Prints a bearer token per account so the API can be explored straight away.
"""

import asyncio

from sqlalchemy import func, select

from src.api.security import create_access_token
from src.config import settings
from src.domain.enums import PlaceStatus, UserRole, VerificationStatus
from src.domain.matching import cell_for
from src.infrastructure.database import async_session_factory, utcnow
from src.infrastructure.models import (
    DriverProfileModel,
    PlaceCategoryModel,
    PlaceModel,
    ProductModel,
    StoreModel,
    UserModel,
)
from src.services.zones import ZoneService

# Accra city centre (approx)
ACCRA_LAT, ACCRA_LNG = 5.6037, -0.1870


USERS = [
    {"email": "admin@tripsync.example", "first_name": "Ama", "last_name": "Mensah", "role": UserRole.SUPER_ADMIN},
    {"email": "kofi@example.com", "first_name": "Kofi", "last_name": "Owusu", "role": UserRole.CUSTOMER},
    {"email": "efua@example.com", "first_name": "Efua", "last_name": "Asante", "role": UserRole.CUSTOMER},
    {"email": "yaw@example.com", "first_name": "Yaw", "last_name": "Boateng", "role": UserRole.CUSTOMER},
    {"email": "store@example.com", "first_name": "Akosua", "last_name": "Darko", "role": UserRole.STORE_OWNER},
]

PROVIDERS = [
    {"email": "driver@example.com", "first_name": "Kwame", "role": UserRole.DRIVER,
     "vehicle": ("Toyota", "Corolla", "GR-1234-22"), "lat": 5.6050, "lng": -0.1880},
    {"email": "taxi@example.com", "first_name": "Kojo", "role": UserRole.TAXI_DRIVER,
     "vehicle": ("Hyundai", "Elantra", "GT-5678-21"), "lat": 5.6010, "lng": -0.1850},
    {"email": "rider@example.com", "first_name": "Abena", "role": UserRole.DISPATCHER,
     "vehicle": ("Honda", "CG125", "M-22-GR-901"), "lat": 5.6070, "lng": -0.1900},
    {"email": "mover@example.com", "first_name": "Kwesi", "role": UserRole.HOUSE_MOVER,
     "vehicle": ("Isuzu", "NPR", "GW-3344-20"), "lat": 5.6000, "lng": -0.1800},
    {"email": "medic@example.com", "first_name": "Adwoa", "role": UserRole.EMERGENCY_RESPONDER,
     "vehicle": ("Toyota", "HiAce Ambulance", "GV-911-23"), "lat": 5.6100, "lng": -0.1950},
]

PRODUCTS = [
    {"name": "Gari (1 kg)", "price": 12.0, "category": "Staples", "stock_quantity": 40},
    {"name": "Shito", "price": 25.0, "category": "Condiments", "stock_quantity": 15},
    {"name": "Fresh bread", "price": 8.0, "category": "Bakery"},
]

CATEGORIES = ["Restaurants", "Pharmacies", "Hospitals", "Markets", "Hotels"]

PLACES = [
    {"name": "Makola Market", "category": "Markets", "lat": 5.5490, "lng": -0.2080},
    {"name": "Korle Bu Teaching Hospital", "category": "Hospitals", "lat": 5.5370, "lng": -0.2270},
    {"name": "Osu Night Market", "category": "Restaurants", "lat": 5.5560, "lng": -0.1820},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        count = (await session.execute(select(func.count()).select_from(UserModel))).scalar()
        if count:
            print("Database already seeded. Skipping.")
            return

        # ── Zones ─────────────────────────────────────────────────────
        zones = ZoneService(session)
        zone_models = await zones.setup_default_zones()
        print(f"  Created {len(zone_models)} service zones")

        # ── Users ─────────────────────────────────────────────────────
        users = {}
        for u in USERS:
            m = UserModel(**u)
            session.add(m)
            users[u["email"]] = m
        await session.flush()
        print(f"  Created {len(users)} users")

        # ── Providers ─────────────────────────────────────────────────
        accra = await zones.find_zone(ACCRA_LAT, ACCRA_LNG)
        for p in PROVIDERS:
            user = UserModel(
                email=p["email"],
                first_name=p["first_name"],
                last_name="Provider",
                role=p["role"],
            )
            session.add(user)
            await session.flush()
            make, model, plate = p["vehicle"]
            profile = DriverProfileModel(
                user_id=user.id,
                role=p["role"],
                vehicle_make=make,
                vehicle_model=model,
                vehicle_plate=plate,
                verification_status=VerificationStatus.APPROVED,
                is_available=True,
                is_online=True,
                current_lat=p["lat"],
                current_lng=p["lng"],
                h3_cell=cell_for(p["lat"], p["lng"], settings.h3_resolution),
                current_zone_id=accra.id if accra else None,
                last_location_at=utcnow(),
            )
            session.add(profile)
            await session.flush()
            if accra:
                await zones.assign_provider(profile, accra, is_primary=True)
            users[p["email"]] = user
        print(f"  Created {len(PROVIDERS)} verified providers")

        # ── Store ─────────────────────────────────────────────────────
        store = StoreModel(
            owner_id=users["store@example.com"].id,
            name="Akosua's Groceries",
            category="Grocery",
            address="Oxford Street, Osu",
            latitude=5.5570,
            longitude=-0.1830,
            business_hours=[
                {"day_of_week": day, "open_time": "08:00", "close_time": "20:00", "is_closed": False}
                for day in range(1, 7)
            ],
        )
        session.add(store)
        await session.flush()
        for p in PRODUCTS:
            session.add(ProductModel(store_id=store.id, in_stock=True, **p))
        print(f"  Created a store with {len(PRODUCTS)} products")

        # ── Places ────────────────────────────────────────────────────
        categories = {}
        for index, name in enumerate(CATEGORIES):
            c = PlaceCategoryModel(name=name, sort_order=index)
            session.add(c)
            categories[name] = c
        await session.flush()

        admin = users["admin@tripsync.example"]
        for p in PLACES:
            session.add(
                PlaceModel(
                    name=p["name"],
                    category_id=categories[p["category"]].id,
                    latitude=p["lat"],
                    longitude=p["lng"],
                    status=PlaceStatus.APPROVED,
                    created_by=admin.id,
                    approved_by=admin.id,
                    approved_at=utcnow(),
                )
            )
        print(f"  Created {len(CATEGORIES)} categories and {len(PLACES)} places")

        await session.commit()

        print("\nBearer tokens (24 h):")
        for email, user in users.items():
            print(f"  {user.role.value:<20} {email:<28} {create_access_token(user.id)}")


if __name__ == "__main__":
    print("Seeding database...")
    asyncio.run(seed())
    print("Done.")
