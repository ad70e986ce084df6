"""Create database schema and seed sample users and listings for development."""
from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

from rentline.db.session import SessionLocal, engine
from rentline.models.base import Base
from rentline.models.listing import Listing, PaymentFrequency, PropertyType
from rentline.models.user import User, UserRole

USERS = [
	{"id": "user-admin", "email": "admin@rentline.test", "full_name": "Platform Admin", "role": UserRole.ADMIN},
	{"id": "user-landlord-sara", "email": "sara@rentline.test", "full_name": "Sara Malik", "role": UserRole.LANDLORD},
	{"id": "user-landlord-omar", "email": "omar@rentline.test", "full_name": "Omar Farooq", "role": UserRole.LANDLORD},
	{"id": "user-tenant-ava", "email": "ava.khan@example.com", "full_name": "Ava Khan", "role": UserRole.TENANT},
	{"id": "user-tenant-daniel", "email": "daniel.lee@example.com", "full_name": "Daniel Lee", "role": UserRole.TENANT},
]

LISTINGS = [
	{
		"id": "listing-park-201",
		"landlord_id": "user-landlord-sara",
		"title": "2BR Park View with Balcony",
		"address": "92 Clifton Block 5",
		"city": "Karachi",
		"property_type": PropertyType.APARTMENT,
		"rent_amount": Decimal("120000"),
		"rent_cycle": PaymentFrequency.MONTHLY,
		"security_deposit": Decimal("240000"),
		"available_date": date(2025, 10, 12),
	},
	{
		"id": "listing-loft-504",
		"landlord_id": "user-landlord-sara",
		"title": "1BR Furnished Loft",
		"address": "18 Do Talwar",
		"city": "Karachi",
		"property_type": PropertyType.CONDO,
		"rent_amount": Decimal("85000"),
		"rent_cycle": PaymentFrequency.MONTHLY,
		"security_deposit": Decimal("170000"),
		"available_date": date(2025, 10, 18),
	},
	{
		"id": "listing-garden-house",
		"landlord_id": "user-landlord-omar",
		"title": "3BR Garden House",
		"address": "7 Street 12, F-7/2",
		"city": "Islamabad",
		"property_type": PropertyType.HOUSE,
		"rent_amount": Decimal("450000"),
		"rent_cycle": PaymentFrequency.QUARTERLY,
		"security_deposit": None,
		"available_date": None,
	},
]


async def create_schema() -> None:
	"""Create the database schema if it does not already exist."""

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_users() -> None:
	"""Insert or update demo users."""

	async with SessionLocal() as session:
		async with session.begin():
			for user_data in USERS:
				user = await session.get(User, user_data["id"])
				if user is None:
					session.add(User(**user_data))
				else:
					user.email = user_data["email"]
					user.full_name = user_data["full_name"]
					user.role = user_data["role"]


async def seed_listings() -> None:
	"""Insert or update demo listings."""

	async with SessionLocal() as session:
		async with session.begin():
			for listing_data in LISTINGS:
				listing = await session.get(Listing, listing_data["id"])
				if listing is None:
					session.add(Listing(**listing_data))
				else:
					for field, value in listing_data.items():
						setattr(listing, field, value)
					listing.deleted_at = None


async def main() -> None:
	await create_schema()
	await seed_users()
	await seed_listings()
	print("Database schema ensured and demo data seeded.")


if __name__ == "__main__":
	asyncio.run(main())
