from db import init_db, get_session
from lifecycle import RideEngine
from models import User, RideType
from routing import RouteEstimator

# campus users with a home spot each; the first one is the demo account
USERS = [
    ("Alex Smith", "UT Arlington", 92, 14, 0, ("UTA Library", "702 Planetarium Pl, Arlington, TX 76019", 32.7292, -97.1152)),
    ("Sarah Jenkins", "UNT Denton", 98, 45, 1, ("UNT Union", "1155 Union Cir, Denton, TX 76203", 33.2075, -97.1526)),
    ("Mike Chen", "UT Dallas", 45, 5, 3, ("UTD Campus", "800 W Campbell Rd, Richardson, TX 75080", 32.9856, -96.7502)),
    ("Emily Ross", "SMU", 88, 22, 2, ("SMU Hall", "6425 Boaz Ln, Dallas, TX 75205", 32.8412, -96.7845)),
]

RIDES = [
    (1, RideType.OFFER, "Denton", "Irving", "2:30 PM", "Heading back after class. Smooth jazz listener."),
    (2, RideType.REQUEST, "Arlington", "Dallas", "5:00 PM", "Need to catch a concert."),
    (3, RideType.OFFER, "Richardson", "Plano", "10:00 AM", "Short hop."),
]


def seed(offline=True):
    init_db()
    session = get_session()
    users = []
    for name, uni, score, done, cancels, (lname, laddr, lat, lng) in USERS:
        users.append(User(
            name=name, university=uni, trust_score=score, rides_completed=done,
            cancellations=cancels, is_verified_student=True,
            location_name=lname, location_address=laddr, location_lat=lat, location_lng=lng,
        ))
    session.add_all(users)
    session.commit()
    for u in users:
        session.refresh(u)
    session.close()

    engine = RideEngine(estimator=RouteEstimator(base_url=None) if offline else None)
    for host_idx, ride_type, frm, to, time_label, desc in RIDES:
        engine.create_ride(users[host_idx].id, ride_type, frm, to, time_label, desc)
    print("Seeded sample data")
    return users


if __name__ == "__main__":
    seed()
