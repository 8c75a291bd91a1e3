import logging
import os
from datetime import date, datetime
from decimal import Decimal

import click
from flask import Flask, Blueprint, current_app, g, jsonify, request
from flask.logging import default_handler
from flask_cors import CORS

from models import Base, GuestUser, StaffUser, init_db, utcnow
from booking_utils import loyalty_tier, is_overdue, sla_deadline, elapsed_label
from auth import (STAFF, FRONT_DESK, current_user, ensure_own_booking, login_required, login_user,
                  logout_user, roles_required)
import reports
import services
from services import HotelError, PermissionDeniedError, ValidationError

api = Blueprint("api", __name__, url_prefix="/api")


# ------------------------
# Serializers
# ------------------------

def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else None


def to_jsonable(value):
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def room_to_dict(r):
    return {
        "id": r.id,
        "number": r.number,
        "room_type": r.room_type,
        "capacity": r.capacity,
        "price_per_night": _money(r.price_per_night),
        "floor": r.floor,
        "status": r.status,
        "is_clean": bool(r.is_clean),
        "last_cleaned": _iso(r.last_cleaned),
        "description": r.description,
        "features": list(r.features or []),
    }


def user_to_dict(u):
    d = {
        "id": u.id,
        "username": u.username,
        "name": u.name,
        "email": u.email,
        "phone": u.phone,
        "role": u.role,
        "enabled": bool(u.enabled),
        "is_staff": u.is_staff,
        "created_at": _iso(u.created_at),
        "last_login": _iso(u.last_login),
    }
    if isinstance(u, GuestUser):
        d["loyalty_points"] = u.loyalty_points or 0
        d["loyalty_tier"] = loyalty_tier(u.loyalty_points)
        d["preferences"] = u.preferences
    elif isinstance(u, StaffUser):
        d["department"] = u.department
        d["position"] = u.position
        d["staff_status"] = u.staff_status
    return d


def booking_to_dict(b):
    return {
        "id": b.id,
        "guest_id": b.guest_id,
        "room_id": b.room_id,
        "room_number": b.room.number if b.room else None,
        "check_in": _iso(b.check_in),
        "check_out": _iso(b.check_out),
        "nights": b.nights,
        "is_active": b.is_active,
        "guests": b.guests,
        "total_price": _money(b.total_price),
        "pricing_strategy": b.pricing_strategy,
        "status": b.status,
        "payment_status": b.payment_status,
        "payment_method": b.payment_method,
        "amount_paid": _money(b.amount_paid),
        "special_requests": b.special_requests,
        "notes": b.notes,
        "cancellation_reason": b.cancellation_reason,
        "created_at": _iso(b.created_at),
        "checked_in_at": _iso(b.checked_in_at),
        "checked_out_at": _iso(b.checked_out_at),
    }


def maintenance_to_dict(m, now=None):
    now = now or utcnow()
    return {
        "id": m.id,
        "room_id": m.room_id,
        "room_number": m.room.number if m.room else None,
        "booking_id": m.booking_id,
        "reported_by_id": m.reported_by_id,
        "assigned_to_id": m.assigned_to_id,
        "issue_type": m.issue_type,
        "description": m.description,
        "priority": m.priority,
        "status": m.status,
        "room_offline": bool(m.room_offline),
        "resolution": m.resolution,
        "created_at": _iso(m.created_at),
        "assigned_at": _iso(m.assigned_at),
        "started_at": _iso(m.started_at),
        "completed_at": _iso(m.completed_at),
        "sla_deadline": _iso(sla_deadline(m.created_at, m.priority)) if m.created_at else None,
        "is_overdue": is_overdue(m.created_at, m.priority, m.status, now),
        "time_elapsed": elapsed_label(m.created_at, now) if m.created_at else None,
        "notes": [
            {"text": n.text, "author_id": n.author_id, "created_at": _iso(n.created_at)}
            for n in m.notes
        ],
    }


# ------------------------
# Request helpers
# ------------------------

def _body():
    return request.get_json(silent=True) or {}


def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"missing fields: {', '.join(missing)}")


def _int_arg(name):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


# ------------------------
# Auth
# ------------------------

@api.route("/auth/register", methods=["POST"])
def register():
    data = _body()
    role = data.get("role", "guest")
    if role != "guest":
        user = current_user()
        if user is None or user.role != "manager":
            raise PermissionDeniedError("Only managers can create staff accounts")
    _require(data, "username", "password", "name", "email")
    user = services.register_user(
        g.db,
        username=data["username"],
        password=data["password"],
        name=data["name"],
        email=data["email"],
        role=role,
        phone=data.get("phone"),
        department=data.get("department"),
        position=data.get("position"),
        preferences=data.get("preferences"),
    )
    return jsonify({"user": user_to_dict(user)}), 201


@api.route("/auth/login", methods=["POST"])
def login():
    data = _body()
    _require(data, "username", "password")
    user = services.authenticate(g.db, data["username"], data["password"])
    login_user(user)
    return jsonify({"user": user_to_dict(user)})


@api.route("/auth/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"reply": "Logged out"})


@api.route("/auth/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": user_to_dict(current_user())})


# ------------------------
# Rooms
# ------------------------

@api.route("/rooms", methods=["GET"])
@login_required
def list_rooms():
    rooms = services.list_rooms(g.db, room_type=request.args.get("type"), status=request.args.get("status"))
    return jsonify({"rooms": [room_to_dict(r) for r in rooms]})


@api.route("/rooms", methods=["POST"])
@roles_required("manager")
def create_room():
    data = _body()
    _require(data, "number")
    room = services.create_room(
        g.db,
        number=data["number"],
        room_type=data.get("room_type", "standard"),
        capacity=data.get("capacity"),
        price_per_night=data.get("price_per_night"),
        floor=data.get("floor"),
        features=data.get("features"),
        description=data.get("description"),
    )
    return jsonify({"room": room_to_dict(room)}), 201


@api.route("/rooms/available", methods=["GET"])
@login_required
def available_rooms():
    args = request.args
    if not args.get("check_in") or not args.get("check_out"):
        raise ValidationError("check_in and check_out are required")
    rooms = services.find_available_rooms(g.db, args["check_in"], args["check_out"],
                                          room_type=args.get("type"), guests=_int_arg("guests"))
    return jsonify({"rooms": [room_to_dict(r) for r in rooms]})


@api.route("/rooms/<int:rid>", methods=["GET"])
@login_required
def get_room(rid):
    return jsonify({"room": room_to_dict(services.get_room(g.db, rid))})


@api.route("/rooms/<int:rid>", methods=["PUT"])
@roles_required("manager")
def update_room(rid):
    room = services.update_room(g.db, rid, **_body())
    return jsonify({"room": room_to_dict(room)})


@api.route("/rooms/<int:rid>", methods=["DELETE"])
@roles_required("manager")
def delete_room(rid):
    services.delete_room(g.db, rid)
    return jsonify({"reply": "Room deleted"})


@api.route("/rooms/<int:rid>/status", methods=["POST"])
@roles_required(*STAFF)
def set_room_status(rid):
    data = _body()
    _require(data, "status")
    room = services.set_room_status(g.db, rid, data["status"])
    return jsonify({"room": room_to_dict(room)})


@api.route("/rooms/<int:rid>/clean", methods=["POST"])
@roles_required(*STAFF)
def clean_room(rid):
    return jsonify({"room": room_to_dict(services.mark_room_cleaned(g.db, rid))})


@api.route("/rooms/<int:rid>/features", methods=["POST", "DELETE"])
@roles_required("manager")
def room_feature(rid):
    data = _body()
    _require(data, "feature")
    if request.method == "POST":
        room = services.add_room_feature(g.db, rid, data["feature"])
    else:
        room = services.remove_room_feature(g.db, rid, data["feature"])
    return jsonify({"room": room_to_dict(room)})


@api.route("/rooms/<int:rid>/bookings", methods=["GET"])
@roles_required(*STAFF)
def room_bookings(rid):
    services.get_room(g.db, rid)
    bookings = services.list_bookings(g.db, room_id=rid, status=request.args.get("status"))
    return jsonify({"bookings": [booking_to_dict(b) for b in bookings]})


@api.route("/quote", methods=["POST"])
@login_required
def quote():
    data = _body()
    _require(data, "room_id", "check_in", "check_out")
    user = current_user()
    guest_id = user.id if user.role == "guest" else data.get("guest_id")
    result = services.quote_price(g.db, data["room_id"], data["check_in"], data["check_out"],
                                  guests=data.get("guests", 1), pricing=data.get("pricing", "standard"),
                                  guest_id=guest_id)
    return jsonify(to_jsonable(result))


# ------------------------
# Bookings
# ------------------------

@api.route("/bookings", methods=["GET"])
@roles_required("guest", *FRONT_DESK)
def list_bookings():
    user = current_user()
    guest_id = user.id if user.role == "guest" else _int_arg("guest_id")
    bookings = services.list_bookings(g.db, status=request.args.get("status"), guest_id=guest_id,
                                      room_id=_int_arg("room_id"))
    return jsonify({"bookings": [booking_to_dict(b) for b in bookings]})


@api.route("/bookings", methods=["POST"])
@roles_required("guest", *FRONT_DESK)
def create_booking():
    data = _body()
    _require(data, "room_id", "check_in", "check_out")
    user = current_user()
    if user.role == "guest":
        guest_id = user.id
    else:
        _require(data, "guest_id")
        guest_id = data["guest_id"]
    booking = services.create_booking(
        g.db,
        guest_id=guest_id,
        room_id=data["room_id"],
        check_in=data["check_in"],
        check_out=data["check_out"],
        guests=data.get("guests", 1),
        special_requests=data.get("special_requests"),
        pricing=data.get("pricing", "standard"),
    )
    return jsonify({"booking": booking_to_dict(booking)}), 201


@api.route("/bookings/today", methods=["GET"])
@roles_required(*FRONT_DESK)
def todays_bookings():
    return jsonify({
        "check_ins": [booking_to_dict(b) for b in services.todays_check_ins(g.db)],
        "check_outs": [booking_to_dict(b) for b in services.todays_check_outs(g.db)],
    })


@api.route("/bookings/<int:bid>", methods=["GET"])
@roles_required("guest", *FRONT_DESK)
def get_booking(bid):
    booking = services.get_booking(g.db, bid)
    ensure_own_booking(current_user(), booking)
    return jsonify({"booking": booking_to_dict(booking)})


@api.route("/bookings/<int:bid>", methods=["PUT"])
@roles_required(*FRONT_DESK)
def update_booking(bid):
    data = _body()
    booking = services.update_booking(
        g.db, bid,
        check_in=data.get("check_in"),
        check_out=data.get("check_out"),
        guests=data.get("guests"),
        room_id=data.get("room_id"),
        special_requests=data.get("special_requests"),
        notes=data.get("notes"),
    )
    return jsonify({"booking": booking_to_dict(booking)})


@api.route("/bookings/<int:bid>/check-in", methods=["POST"])
@roles_required(*FRONT_DESK)
def check_in(bid):
    booking = services.check_in(g.db, bid)
    return jsonify({"reply": "Guest checked in", "booking": booking_to_dict(booking)})


@api.route("/bookings/<int:bid>/check-out", methods=["POST"])
@roles_required(*FRONT_DESK)
def check_out(bid):
    booking = services.check_out(g.db, bid, payment_method=_body().get("payment_method"))
    return jsonify({"reply": "Guest checked out", "booking": booking_to_dict(booking)})


@api.route("/bookings/<int:bid>/cancel", methods=["POST"])
@roles_required("guest", *FRONT_DESK)
def cancel_booking(bid):
    user = current_user()
    ensure_own_booking(user, services.get_booking(g.db, bid))
    booking = services.cancel_booking(g.db, bid, reason=_body().get("reason"),
                                      enforce_cutoff=user.role == "guest",
                                      cutoff_hours=current_app.config["CANCELLATION_CUTOFF_HOURS"])
    return jsonify({"reply": "Booking cancelled", "booking": booking_to_dict(booking)})


@api.route("/bookings/<int:bid>/no-show", methods=["POST"])
@roles_required(*FRONT_DESK)
def no_show(bid):
    booking = services.mark_no_show(g.db, bid)
    return jsonify({"booking": booking_to_dict(booking)})


@api.route("/bookings/<int:bid>/payment", methods=["POST"])
@roles_required(*FRONT_DESK)
def payment(bid):
    data = _body()
    _require(data, "amount")
    booking = services.record_payment(g.db, bid, data["amount"], method=data.get("payment_method"))
    return jsonify({"booking": booking_to_dict(booking)})


# ------------------------
# Maintenance
# ------------------------

@api.route("/maintenance", methods=["GET"])
@roles_required(*STAFF)
def list_maintenance():
    args = request.args
    if args.get("view") == "overdue":
        items = services.overdue_maintenance_requests(g.db)
    elif args.get("view") == "unassigned":
        items = services.unassigned_maintenance_requests(g.db)
    elif args.get("view") == "high-priority":
        items = services.high_priority_maintenance_requests(g.db)
    elif args.get("view") == "open":
        items = services.open_maintenance_requests(g.db)
    else:
        items = services.list_maintenance_requests(g.db, status=args.get("status"), room_id=_int_arg("room_id"),
                                                   assigned_to_id=_int_arg("assigned_to"),
                                                   priority=args.get("priority"))
    now = utcnow()
    return jsonify({"requests": [maintenance_to_dict(m, now) for m in items]})


@api.route("/maintenance", methods=["POST"])
@login_required
def create_maintenance():
    data = _body()
    _require(data, "room_id", "issue_type")
    user = current_user()
    if user.role == "guest":
        stays = services.list_bookings(g.db, guest_id=user.id, room_id=data["room_id"], status="checked-in")
        if not stays:
            raise PermissionDeniedError("Guests may only report issues for the room they are staying in")
    req = services.create_maintenance_request(
        g.db,
        room_id=data["room_id"],
        issue_type=data["issue_type"],
        description=data.get("description"),
        reported_by_id=user.id,
        priority=data.get("priority", "medium"),
        booking_id=data.get("booking_id"),
        take_offline=bool(data.get("take_offline")) and user.role != "guest",
    )
    return jsonify({"request": maintenance_to_dict(req)}), 201


@api.route("/maintenance/<int:mid>", methods=["GET"])
@roles_required(*STAFF)
def get_maintenance(mid):
    return jsonify({"request": maintenance_to_dict(services.get_maintenance_request(g.db, mid))})


@api.route("/maintenance/<int:mid>", methods=["DELETE"])
@roles_required("manager")
def delete_maintenance(mid):
    services.delete_maintenance_request(g.db, mid)
    return jsonify({"reply": "Maintenance request deleted"})


@api.route("/maintenance/<int:mid>/assign", methods=["POST"])
@roles_required(*STAFF)
def assign_maintenance(mid):
    data = _body()
    user = current_user()
    try:
        staff_id = int(data.get("staff_id", user.id))
    except (TypeError, ValueError):
        raise ValidationError("staff_id must be an integer")
    if user.role == "maintenance" and staff_id != user.id:
        raise PermissionDeniedError("Maintenance staff may only assign requests to themselves")
    req = services.assign_maintenance_request(g.db, mid, staff_id, assigned_by_id=user.id)
    return jsonify({"request": maintenance_to_dict(req)})


@api.route("/maintenance/<int:mid>/start", methods=["POST"])
@roles_required("maintenance", "manager")
def start_maintenance(mid):
    req = services.start_maintenance_work(g.db, mid, user_id=current_user().id)
    return jsonify({"request": maintenance_to_dict(req)})


@api.route("/maintenance/<int:mid>/complete", methods=["POST"])
@roles_required("maintenance", "manager")
def complete_maintenance(mid):
    req = services.complete_maintenance_work(g.db, mid, resolution=_body().get("resolution"),
                                             user_id=current_user().id)
    return jsonify({"request": maintenance_to_dict(req)})


@api.route("/maintenance/<int:mid>/cancel", methods=["POST"])
@roles_required("manager")
def cancel_maintenance(mid):
    req = services.cancel_maintenance_request(g.db, mid, reason=_body().get("reason"), user_id=current_user().id)
    return jsonify({"request": maintenance_to_dict(req)})


@api.route("/maintenance/<int:mid>/priority", methods=["POST"])
@roles_required("manager")
def maintenance_priority(mid):
    data = _body()
    _require(data, "priority")
    req = services.update_maintenance_priority(g.db, mid, data["priority"], user_id=current_user().id)
    return jsonify({"request": maintenance_to_dict(req)})


@api.route("/maintenance/<int:mid>/notes", methods=["POST"])
@roles_required("maintenance", "manager")
def maintenance_note(mid):
    req = services.add_maintenance_note(g.db, mid, _body().get("text"), user_id=current_user().id)
    return jsonify({"request": maintenance_to_dict(req)})


# ------------------------
# Reports
# ------------------------

def _range_args():
    if not request.args.get("start") or not request.args.get("end"):
        raise ValidationError("start and end are required")
    return request.args["start"], request.args["end"]


@api.route("/reports/occupancy", methods=["GET"])
@roles_required("manager")
def occupancy_report():
    return jsonify(to_jsonable(reports.occupancy_report(g.db, *_range_args())))


@api.route("/reports/revenue", methods=["GET"])
@roles_required("manager")
def revenue_report():
    return jsonify(to_jsonable(reports.revenue_report(g.db, *_range_args())))


@api.route("/reports/maintenance", methods=["GET"])
@roles_required("manager")
def maintenance_report():
    return jsonify(to_jsonable(reports.maintenance_report(g.db, *_range_args())))


@api.route("/reports/summary", methods=["GET"])
@roles_required("manager")
def summary_report():
    return jsonify(to_jsonable(reports.summary_report(g.db)))


# ------------------------
# Users
# ------------------------

@api.route("/users", methods=["GET"])
@roles_required("manager")
def list_users():
    return jsonify({"users": [user_to_dict(u) for u in services.list_users(g.db, role=request.args.get("role"))]})


@api.route("/users/<int:uid>", methods=["GET"])
@login_required
def get_user(uid):
    user = current_user()
    if user.id != uid and user.role != "manager":
        raise PermissionDeniedError("You may only view your own profile")
    return jsonify({"user": user_to_dict(services.get_user(g.db, uid))})


@api.route("/users/<int:uid>", methods=["PUT"])
@login_required
def update_user(uid):
    user = current_user()
    data = _body()
    if user.id != uid and user.role != "manager":
        raise PermissionDeniedError("You may only edit your own profile")
    if "enabled" in data and user.role != "manager":
        raise PermissionDeniedError("Only managers can enable or disable accounts")
    updated = services.update_user(g.db, uid, name=data.get("name"), email=data.get("email"),
                                   phone=data.get("phone"), enabled=data.get("enabled"),
                                   preferences=data.get("preferences"))
    return jsonify({"user": user_to_dict(updated)})


@api.route("/users/<int:uid>/status", methods=["POST"])
@roles_required("manager")
def staff_status(uid):
    data = _body()
    _require(data, "status")
    return jsonify({"user": user_to_dict(services.set_staff_status(g.db, uid, data["status"]))})


# ------------------------
# Demo data
# ------------------------

DEMO_ROOMS = [
    ("101", "standard", "1"), ("102", "standard", "1"), ("103", "standard", "1"),
    ("201", "deluxe", "2"), ("202", "deluxe", "2"),
    ("301", "suite", "3"), ("302", "executive", "3"),
]

DEMO_USERS = [
    # username, name, role, department
    ("guest", "Demo Guest", "guest", None),
    ("reception", "Front Desk", "receptionist", "Front Office"),
    ("maint", "Maintenance User", "maintenance", "Maintenance"),
    ("manager", "Hotel Manager", "manager", "Management"),
]


def seed_demo(db, password="password"):
    created = 0
    numbers = {r.number for r in services.list_rooms(db)}
    for number, room_type, floor in DEMO_ROOMS:
        if number not in numbers:
            services.create_room(db, number, room_type=room_type, floor=floor)
            created += 1
    existing = {u.username for u in services.list_users(db)}
    for username, name, role, department in DEMO_USERS:
        if username not in existing:
            services.register_user(db, username, password, name, f"{username}@hotel.example", role=role,
                                   department=department)
            created += 1
    return created


# ------------------------
# Application
# ------------------------

def create_app(config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        SECRET_KEY="dev-secret",
        DATABASE_URL=None,
        CANCELLATION_CUTOFF_HOURS=24,
        LOG_LEVEL="INFO",
    )
    # HOTEL_DATABASE_URL, HOTEL_SECRET_KEY, ...
    app.config.from_prefixed_env("HOTEL")
    if config:
        app.config.update(config)
    if not app.config["DATABASE_URL"]:
        os.makedirs(app.instance_path, exist_ok=True)
        app.config["DATABASE_URL"] = "sqlite:///" + os.path.join(app.instance_path, "hotel.db")

    app.logger.setLevel(app.config["LOG_LEVEL"])
    for name in ("services", "reports"):
        domain_logger = logging.getLogger(name)
        domain_logger.setLevel(app.config["LOG_LEVEL"])
        domain_logger.addHandler(default_handler)

    CORS(app)
    app.extensions["db_session"] = init_db(app.config["DATABASE_URL"])
    app.register_blueprint(api)

    @app.before_request
    def open_session():
        g.db = app.extensions["db_session"]()

    @app.teardown_appcontext
    def close_session(exc):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    @app.errorhandler(HotelError)
    def handle_hotel_error(e):
        if "db" in g:
            g.db.rollback()
        return jsonify({"error": e.message}), e.status_code

    @app.route("/")
    def index():
        return jsonify({"service": "hotel operations", "api": "/api"})

    @app.cli.command("reset-db")
    def reset_db_command():
        """Drop and recreate all tables."""
        engine = app.extensions["db_session"].kw["bind"]
        Base.metadata.drop_all(engine)
        Base.metadata.create_all(engine)
        click.echo("Database reset.")

    @app.cli.command("seed-demo")
    @click.option("--password", default="password", help="Password for the demo accounts.")
    def seed_demo_command(password):
        """Load demo rooms and one account per role."""
        db = app.extensions["db_session"]()
        try:
            created = seed_demo(db, password=password)
        finally:
            db.close()
        click.echo(f"Created {created} records.")

    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=5000)
