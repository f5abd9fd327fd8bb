"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 passengers (two with an emergency contact on file)
  - 5 drivers (3 available, 1 busy, 1 offline) with driver rows
  - 2 admins
  - one bearer token per user, printed for trying the API
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from ridehail.domain.enums import DriverStatus, UserRole
from ridehail.infrastructure.database import async_session_factory, dispose_engine
from ridehail.infrastructure.identity import JwtIdentityResolver
from ridehail.infrastructure.models import DriverModel, UserModel


PASSENGERS = [
    {"name": "Aarav Sharma", "email": "aarav@example.com", "phone": "+919800000001",
     "contact": ("Kavya Sharma", "+919800000101")},
    {"name": "Priya Patel", "email": "priya@example.com", "phone": "+919800000002",
     "contact": ("Raj Patel", "+919800000102")},
    {"name": "Rohan Mehta", "email": "rohan@example.com", "phone": "+919800000003",
     "contact": None},
    {"name": "Sneha Gupta", "email": "sneha@example.com", "phone": "+919800000004",
     "contact": None},
]

DRIVERS = [
    {"name": "Vikram Singh", "email": "vikram@example.com", "status": DriverStatus.AVAILABLE,
     "lat": 19.0900, "lng": 72.8660},
    {"name": "Ananya Reddy", "email": "ananya@example.com", "status": DriverStatus.AVAILABLE,
     "lat": 19.0880, "lng": 72.8640},
    {"name": "Karan Joshi", "email": "karan@example.com", "status": DriverStatus.AVAILABLE,
     "lat": 19.0910, "lng": 72.8670},
    {"name": "Meera Nair", "email": "meera@example.com", "status": DriverStatus.BUSY,
     "lat": 19.0920, "lng": 72.8680},
    {"name": "Arjun Kumar", "email": "arjun@example.com", "status": DriverStatus.OFFLINE,
     "lat": None, "lng": None},
]

ADMINS = [
    {"name": "Diya Iyer", "email": "diya@example.com"},
    {"name": "Ops Desk", "email": "ops@example.com"},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        users: list[UserModel] = []

        # ── Passengers ────────────────────────────────────────────────
        for p in PASSENGERS:
            name, phone = p["contact"] or (None, None)
            m = UserModel(
                name=p["name"],
                email=p["email"],
                phone=p["phone"],
                role=UserRole.PASSENGER,
                emergency_contact_name=name,
                emergency_contact_phone=phone,
            )
            session.add(m)
            users.append(m)
        await session.flush()
        print(f"  Created {len(PASSENGERS)} passengers")

        # ── Drivers ───────────────────────────────────────────────────
        for d in DRIVERS:
            m = UserModel(name=d["name"], email=d["email"], role=UserRole.DRIVER)
            session.add(m)
            await session.flush()
            session.add(
                DriverModel(
                    user_id=m.id,
                    status=d["status"],
                    current_lat=d["lat"],
                    current_lng=d["lng"],
                )
            )
            users.append(m)
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers")

        # ── Admins ────────────────────────────────────────────────────
        for a in ADMINS:
            m = UserModel(name=a["name"], email=a["email"], role=UserRole.ADMIN)
            session.add(m)
            users.append(m)
        await session.flush()
        print(f"  Created {len(ADMINS)} admins")

        await session.commit()

        identity = JwtIdentityResolver()
        print("\nBearer tokens (valid 7 days):")
        for u in users:
            token = identity.issue(u.id, u.role, expires_in=timedelta(days=7))
            print(f"  {u.role.value:<9} {u.email:<22} {token}")

        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
