from datetime import datetime, time, timedelta
from decimal import Decimal

from app import app, db
from models import Calendar, Merchandise, MerchandiseSize, Movie, utcnow

seed_movies = [
    ("The Dark Knight", 152),
    ("Interstellar", 169),
    ("Spirited Away", 125),
    ("Jaws", 124),
]

seed_merch = [
    ("Golden Arm T-Shirt", "Soft cotton tee with the theater logo", Decimal("20.00"), {"S": 10, "M": 15, "L": 15, "XL": 5}),
    ("Golden Arm Tote", "Canvas tote bag", Decimal("15.00"), {}),
]


def next_screening(weeks_ahead):
    # screenings are Thursdays at 8 PM
    today = utcnow().date()
    days_until_thursday = (3 - today.weekday()) % 7
    day = today + timedelta(days=days_until_thursday + 7 * weeks_ahead)
    return datetime.combine(day, time(20, 0))


with app.app_context():

    # ------------------------------
    # Seed Movies
    # ------------------------------
    for weeks_ahead, (title, runtime) in enumerate(seed_movies):
        date = next_screening(weeks_ahead)
        if Movie.query.filter_by(date=date).first():
            print(f"Skipping {title} (a movie is already scheduled for {date:%Y-%m-%d})")
            continue
        db.session.add(Movie(title=title, date=date, runtime=runtime))
        print(f"Added movie: {title} on {date:%Y-%m-%d}")

    # ------------------------------
    # Seed Calendar
    # ------------------------------
    start = next_screening(0) - timedelta(days=3)
    end = next_screening(len(seed_movies) - 1) + timedelta(days=1)
    overlapping = Calendar.query.filter(Calendar.start_date <= end, Calendar.end_date >= start).count()
    if overlapping:
        print("Skipping calendar (overlaps an existing calendar)")
    else:
        db.session.add(Calendar(start_date=start, end_date=end))
        print(f"Added calendar: {start:%Y-%m-%d} to {end:%Y-%m-%d}")

    # ------------------------------
    # Seed Merchandise
    # ------------------------------
    for name, description, price, sizes in seed_merch:
        if Merchandise.query.filter_by(name=name).first():
            print(f"Skipping {name} (already in DB)")
            continue
        merch = Merchandise(name=name, description=description, price=price)
        merch.sizes = [MerchandiseSize(size=size, quantity=quantity) for size, quantity in sizes.items()]
        db.session.add(merch)
        print(f"Added merchandise: {name}")

    db.session.commit()
    print("Seeding complete!")
