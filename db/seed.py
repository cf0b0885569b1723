# Insert Sample Authorized Locations
from sqlmodel import Session, SQLModel

from db.session import get_engine
from models.authorized_location import AuthorizedLocation

SAMPLE_LOCATIONS = [
    AuthorizedLocation(
        id="HQ",
        name="Headquarters",
        latitude=38.9931538759034,
        longitude=-76.9428334513501,
        radius_meters=100.0,  # 100 m radius
    ),
    AuthorizedLocation(
        id="WAREHOUSE",
        name="Warehouse",
        latitude=38.9870124,
        longitude=-76.9361207,
        radius_meters=150.0,  # Slightly larger radius for the yard
    ),
]


def seed_locations():
    engine = get_engine()
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        for location in SAMPLE_LOCATIONS:
            # Check if location already exists to avoid duplicates
            if session.get(AuthorizedLocation, location.id):
                print(f"{location.id} location already exists")
                continue
            session.add(location)
            print(f"Added {location.id} location")

        session.commit()


if __name__ == "__main__":
    seed_locations()
