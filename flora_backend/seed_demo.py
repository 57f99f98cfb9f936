"""
Database seeding script for a demo flower shop.

Creates one organization with an OWNER, a MANAGER and two COURIERS, plus a
handful of assembled orders around central Moscow, and prints a bearer
token for each user. Run this script after the database is set up.
"""

import asyncio

from sqlalchemy import select

from flora_backend.app.core.jwt import issue_user_token
from flora_backend.app.db.session import AsyncSessionLocal, engine, Base
from flora_backend.app.models.enums import UserRole
from flora_backend.app.models.order import Order
from flora_backend.app.models.order_enums import OrderStatus, GeoStatus
from flora_backend.app.models.organization import Organization
from flora_backend.app.models.user import User

DEMO_ORG = "Flora Demo"

DEMO_USERS = [
    ("owner@flora.demo", "Olga Owner", UserRole.OWNER, None),
    ("manager@flora.demo", "Maria Manager", UserRole.MANAGER, None),
    ("courier1@flora.demo", "Ivan Courier", UserRole.COURIER, "+79990000001"),
    ("courier2@flora.demo", "Pavel Courier", UserRole.COURIER, "+79990000002"),
]

DEMO_ORDERS = [
    ("Anna", "Tverskaya St 7, Moscow", 55.7601, 37.6085),
    ("Boris", "Arbat St 10, Moscow", 55.7520, 37.5930),
    ("Vera", "Pyatnitskaya St 25, Moscow", 55.7390, 37.6280),
    ("Gleb", "Myasnitskaya St 20, Moscow", 55.7640, 37.6370),
]


async def seed_demo():
    """
    Seed the demo organization.

    Skips everything if the organization already exists.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting demo seeding...")

        result = await db.execute(select(Organization).where(Organization.name == DEMO_ORG))
        if result.scalar_one_or_none():
            print("ℹ️  Demo organization already exists, skipping seeding")
            return

        org = Organization(name=DEMO_ORG)
        db.add(org)
        await db.flush()

        users = []
        for email, name, role, phone in DEMO_USERS:
            user = User(organization_id=org.id, email=email, name=name, role=role, phone=phone, is_active=True)
            db.add(user)
            users.append(user)
        await db.flush()

        courier = next(u for u in users if u.role == UserRole.COURIER)
        for client_name, address, lat, lon in DEMO_ORDERS:
            db.add(Order(
                organization_id=org.id,
                courier_id=courier.id,
                client_name=client_name,
                address=address,
                status=OrderStatus.ASSEMBLED,
                latitude=lat,
                longitude=lon,
                geo_status=GeoStatus.SUCCESS,
            ))

        await db.commit()
        print(f"✅ Created organization '{DEMO_ORG}' with {len(DEMO_ORDERS)} orders")

        print("\n🔑 Bearer tokens:")
        for user in users:
            token = issue_user_token(user)
            print(f"   {user.role.value:<8} {user.email}: {token}")


if __name__ == "__main__":
    asyncio.run(seed_demo())
