"""
Seed script -- populates the document store with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 sample customers, each with payment methods (one default)
  - 5 sample drivers (spread around Abidjan)
  - 6 sample rides (mix of waiting, assigned, active, completed, declined)
"""

import asyncio

from src.domain.entities import Location, Place, RideRequest
from src.domain.enums import CancellationReason, RideClass, RideStatus
from src.domain.distance import distance_between
from src.domain.pricing import FareCalculator
from src.infrastructure.change_feed import RedisChangeFeed
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import (
    CUSTOMERS,
    DRIVERS,
    PAYMENT_METHODS,
    CustomerRepository,
    RideRequestRepository,
)
from src.infrastructure.sql_store import SqlDocumentStore
from src.services.cancellation import cancellation_fields
from src.services.driver_assignment import (
    assign_driver_to_ride,
    complete_trip,
    mark_customer_picked_up,
    start_trip,
)

# Abidjan, Plateau (approx)
CENTER_LAT, CENTER_LNG = 5.3197, -4.0163


CUSTOMERS_DATA = [
    {"id": "cust-awa", "first_name": "Awa", "phone": "+225 07 01 02 03 04"},
    {"id": "cust-koffi", "first_name": "Koffi", "phone": "+225 05 11 22 33 44"},
    {"id": "cust-mariam", "first_name": "Mariam", "phone": "+225 01 44 55 66 77"},
    {"id": "cust-yao", "first_name": "Yao", "phone": "+225 07 99 88 77 66"},
]

PAYMENT_METHODS_DATA = [
    {"passenger_id": "cust-awa", "type": "cash", "title": "Cash", "is_default": True},
    {"passenger_id": "cust-awa", "type": "mobile_money", "title": "Orange Money", "is_default": False},
    {"passenger_id": "cust-koffi", "type": "mobile_money", "title": "MTN MoMo", "is_default": True},
    {"passenger_id": "cust-mariam", "type": "cash", "title": "Cash", "is_default": True},
    {"passenger_id": "cust-yao", "type": "card", "title": "Visa •••• 4242", "is_default": True},
]

DRIVERS_DATA = [
    {"id": "drv-ibrahim", "first_name": "Ibrahim", "last_name": "Traoré", "phone": "+225 07 12 34 56 78",
     "car_make": "Toyota", "car_model": "Corolla", "car_color": "White", "plate": "AB-1234-CI",
     "lat": 5.3210, "lng": -4.0150},
    {"id": "drv-fatou", "first_name": "Fatou", "last_name": "Koné", "phone": "+225 05 87 65 43 21",
     "car_make": "Hyundai", "car_model": "Accent", "car_color": "Grey", "plate": "CD-5678-CI",
     "lat": 5.3160, "lng": -4.0200},
    {"id": "drv-serge", "first_name": "Serge", "last_name": "Kouassi", "phone": "+225 01 23 45 67 89",
     "car_make": "Yamaha", "car_model": "Crypton", "car_color": "Red", "plate": "MT-0042-CI",
     "lat": 5.3250, "lng": -4.0120},
    {"id": "drv-aminata", "first_name": "Aminata", "last_name": "Diallo", "phone": "+225 07 65 43 21 09",
     "car_make": "Kia", "car_model": "Rio", "car_color": "Blue", "plate": "EF-9012-CI",
     "lat": 5.3300, "lng": -4.0250},
    {"id": "drv-jean", "first_name": "Jean", "last_name": "N'Guessan", "phone": "+225 05 55 44 33 22",
     "car_make": "Honda", "car_model": "Wave", "car_color": "Black", "plate": "MT-0777-CI",
     "lat": 5.3100, "lng": -4.0100},
]

PLACES = {
    "plateau": Place(Location(5.3197, -4.0163), "Plateau, Abidjan"),
    "cocody": Place(Location(5.3599, -3.9866), "Cocody, Abidjan"),
    "marcory": Place(Location(5.3034, -3.9826), "Marcory, Abidjan"),
    "yopougon": Place(Location(5.3364, -4.0889), "Yopougon, Abidjan"),
    "airport": Place(Location(5.2539, -3.9263), "Aéroport FHB, Port-Bouët"),
}

# (passenger, from, to, class, driver, final status)
RIDES_DATA = [
    ("cust-awa", "plateau", "cocody", RideClass.PRIVATE, None, RideStatus.WAITING),
    ("cust-koffi", "marcory", "plateau", RideClass.MOTO, "drv-serge", RideStatus.ASSIGNED),
    ("cust-mariam", "yopougon", "plateau", RideClass.PRIVATE, "drv-ibrahim", RideStatus.ACTIVE),
    ("cust-awa", "airport", "cocody", RideClass.PRIVATE, "drv-fatou", RideStatus.COMPLETED),
    ("cust-yao", "cocody", "marcory", RideClass.MOTO, "drv-jean", RideStatus.COMPLETED),
    ("cust-koffi", "plateau", "airport", RideClass.PRIVATE, "drv-aminata", RideStatus.DECLINED),
]


async def seed():
    store = SqlDocumentStore(async_session_factory, RedisChangeFeed(get_redis()))
    fares = FareCalculator()

    # ── Customers & payment methods ───────────────────────────────
    for c in CUSTOMERS_DATA:
        await store.create(
            CUSTOMERS,
            {"first_name": c["first_name"], "phone": c["phone"], "photo": None},
            doc_id=c["id"],
        )
    for m in PAYMENT_METHODS_DATA:
        await store.create(PAYMENT_METHODS, m)
    print(f"  Created {len(CUSTOMERS_DATA)} customers, {len(PAYMENT_METHODS_DATA)} payment methods")

    # ── Drivers ───────────────────────────────────────────────────
    for d in DRIVERS_DATA:
        await store.create(
            DRIVERS,
            {
                "first_name": d["first_name"],
                "last_name": d["last_name"],
                "phone": d["phone"],
                "photo": None,
                "car_make": d["car_make"],
                "car_model": d["car_model"],
                "car_color": d["car_color"],
                "plate": d["plate"],
                "latitude": d["lat"],
                "longitude": d["lng"],
                "rating_sum": 0,
                "rating_count": 0,
            },
            doc_id=d["id"],
        )
    print(f"  Created {len(DRIVERS_DATA)} drivers")

    # ── Rides ─────────────────────────────────────────────────────
    rides = RideRequestRepository(store)
    customers = CustomerRepository(store)
    for passenger_id, origin, target, ride_class, driver_id, status in RIDES_DATA:
        pickup, destination = PLACES[origin], PLACES[target]
        # Straight-line distance stands in for a routed one here.
        distance = distance_between(pickup.location, destination.location)
        ride = await rides.create(
            RideRequest(
                passenger=await customers.get_profile(passenger_id),
                pickup=pickup,
                destination=destination,
                ride_class=ride_class,
                fare=fares.fare(distance, ride_class),
                distance_km=distance,
                duration_min=round(distance * 2.5),
                payment_method="",
            )
        )
        await rides.create_driver_copy(ride)

        if driver_id is not None:
            await assign_driver_to_ride(store, ride.id, driver_id)
        if status in (RideStatus.ACTIVE, RideStatus.COMPLETED):
            await start_trip(store, ride.id)
            await mark_customer_picked_up(store, ride.id)
        if status is RideStatus.COMPLETED:
            await complete_trip(store, ride.id)
        if status is RideStatus.DECLINED:
            await rides.update_fields(
                ride.id, cancellation_fields(CancellationReason.DRIVER_NO_SHOW)
            )
    print(f"  Created {len(RIDES_DATA)} rides")

    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
