import logging
from datetime import date
from decimal import Decimal

from werkzeug.security import generate_password_hash, check_password_hash

from models import (Room, User, GuestUser, StaffUser, Booking, MaintenanceRequest, MaintenanceNote,
                    ROOM_TYPES, ROOM_STATUSES, ROLES, STAFF_STATUSES, ISSUE_TYPES, PRIORITIES,
                    PAYMENT_METHODS, MAINTENANCE_STATUSES, BOOKING_STATUSES, ACTIVE_BOOKING_STATUSES,
                    UNRESOLVED_MAINTENANCE_STATUSES, utcnow)
from booking_utils import (parse_stay_date, nights_between, overlaps, can_transition,
                           can_transition_maintenance, get_pricing_strategy, calculate_price,
                           loyalty_tier, within_cancellation_window, is_overdue)

logger = logging.getLogger(__name__)

# capacity, nightly price, features
ROOM_TYPE_DEFAULTS = {
    "standard": (2, Decimal("100"), ["TV", "WiFi", "Air Conditioning"]),
    "deluxe": (3, Decimal("200"), ["TV", "WiFi", "Air Conditioning", "Mini Bar", "King Size Bed"]),
    "suite": (4, Decimal("300"), ["TV", "WiFi", "Air Conditioning", "Mini Bar", "King Size Bed",
                                  "Jacuzzi", "Separate Living Area"]),
    "executive": (2, Decimal("250"), ["TV", "WiFi", "Air Conditioning", "Work Desk", "Lounge Access"]),
}

ROOM_FIELDS = ("number", "room_type", "capacity", "price_per_night", "floor", "is_clean",
               "description", "features")


class HotelError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(HotelError):
    status_code = 400


class AuthenticationError(HotelError):
    status_code = 401


class PermissionDeniedError(HotelError):
    status_code = 403


class NotFoundError(HotelError):
    status_code = 404

    def __init__(self, resource, key):
        super().__init__(f"{resource} {key} not found")


class ConflictError(HotelError):
    status_code = 409


class InvalidTransitionError(HotelError):
    status_code = 409

    def __init__(self, resource, current, target):
        super().__init__(f"{resource} cannot go from '{current}' to '{target}'")
        self.current = current
        self.target = target


def _choice(value, choices, label):
    if value not in choices:
        raise ValidationError(f"{label} must be one of: {', '.join(choices)}")
    return value


def _positive_int(value, label):
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer")
    if n < 1:
        raise ValidationError(f"{label} must be at least 1")
    return n


def _amount(value, label):
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{label} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{label} cannot be negative")
    return amount


def _stay_dates(check_in, check_out):
    try:
        ci = parse_stay_date(check_in)
        co = parse_stay_date(check_out)
    except ValueError as e:
        raise ValidationError(str(e))
    if co <= ci:
        raise ValidationError("check_out must be after check_in")
    return ci, co


# ------------------------
# Rooms
# ------------------------

def get_room(db, room_id):
    room = db.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room", room_id)
    return room


def get_room_by_number(db, number):
    room = db.query(Room).filter_by(number=str(number)).first()
    if room is None:
        raise NotFoundError("Room", number)
    return room


def list_rooms(db, room_type=None, status=None):
    q = db.query(Room)
    if room_type:
        q = q.filter_by(room_type=room_type)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Room.number).all()


def create_room(db, number, room_type="standard", capacity=None, price_per_night=None, floor=None,
                features=None, description=None):
    _choice(room_type, ROOM_TYPES, "room_type")
    number = str(number).strip() if number is not None else ""
    if not number:
        raise ValidationError("room number is required")
    if db.query(Room).filter_by(number=number).first():
        raise ConflictError(f"Room {number} already exists")

    default_capacity, default_price, default_features = ROOM_TYPE_DEFAULTS[room_type]
    room = Room(
        number=number,
        room_type=room_type,
        capacity=_positive_int(capacity, "capacity") if capacity is not None else default_capacity,
        price_per_night=_amount(price_per_night, "price_per_night") if price_per_night is not None else default_price,
        floor=str(floor) if floor is not None else None,
        status="available",
        is_clean=True,
        last_cleaned=utcnow(),
        description=description,
        features=list(features) if features is not None else list(default_features),
    )
    db.add(room)
    db.commit()
    db.refresh(room)
    logger.info("room %s created (%s)", room.number, room.room_type)
    return room


def update_room(db, room_id, **fields):
    room = get_room(db, room_id)
    unknown = set(fields) - set(ROOM_FIELDS)
    if unknown:
        raise ValidationError(f"unknown room fields: {', '.join(sorted(unknown))}")

    if "number" in fields:
        number = str(fields["number"]).strip()
        other = db.query(Room).filter_by(number=number).first()
        if other is not None and other.id != room.id:
            raise ConflictError(f"Room {number} already exists")
        room.number = number
    if "room_type" in fields:
        room.room_type = _choice(fields["room_type"], ROOM_TYPES, "room_type")
    if "capacity" in fields:
        capacity = _positive_int(fields["capacity"], "capacity")
        busiest = max((b.guests for b in _active_bookings_for_room(db, room)), default=0)
        if capacity < busiest:
            raise ConflictError(f"Room {room.number} has an active booking for {busiest} guests")
        room.capacity = capacity
    if "price_per_night" in fields:
        room.price_per_night = _amount(fields["price_per_night"], "price_per_night")
    if "floor" in fields:
        room.floor = fields["floor"]
    if "is_clean" in fields:
        room.is_clean = bool(fields["is_clean"])
    if "description" in fields:
        room.description = fields["description"]
    if "features" in fields:
        room.features = list(fields["features"] or [])

    db.commit()
    db.refresh(room)
    return room


def delete_room(db, room_id):
    room = get_room(db, room_id)
    if _active_bookings_for_room(db, room):
        logger.warning("refused to delete room %s with active bookings", room.number)
        raise ConflictError(f"Cannot delete room {room.number} as it has active bookings")
    if room.bookings or room.maintenance_requests:
        # history rows reference the room; take it out of service instead
        raise ConflictError(f"Cannot delete room {room.number} as it has booking or maintenance history")
    db.delete(room)
    db.commit()
    logger.info("room %s deleted", room.number)


def set_room_status(db, room_id, status):
    room = get_room(db, room_id)
    _choice(status, ROOM_STATUSES, "status")
    if status == "available" and any(b.status == "checked-in" for b in _active_bookings_for_room(db, room)):
        raise ConflictError(f"Room {room.number} has a checked-in guest")
    room.status = status
    db.commit()
    db.refresh(room)
    return room


def mark_room_cleaned(db, room_id):
    room = get_room(db, room_id)
    room.is_clean = True
    room.last_cleaned = utcnow()
    db.commit()
    db.refresh(room)
    return room


def add_room_feature(db, room_id, feature):
    room = get_room(db, room_id)
    features = list(room.features or [])
    if feature not in features:
        features.append(feature)
        room.features = features
        db.commit()
        db.refresh(room)
    return room


def remove_room_feature(db, room_id, feature):
    room = get_room(db, room_id)
    room.features = [f for f in (room.features or []) if f != feature]
    db.commit()
    db.refresh(room)
    return room


def _active_bookings_for_room(db, room, exclude_booking_id=None):
    q = db.query(Booking).filter(Booking.room_id == room.id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.all()


def is_room_available(db, room, check_in, check_out, exclude_booking_id=None):
    for b in _active_bookings_for_room(db, room, exclude_booking_id):
        if overlaps(b.check_in, b.check_out, check_in, check_out):
            return False
    return True


def find_available_rooms(db, check_in, check_out, room_type=None, guests=None):
    ci, co = _stay_dates(check_in, check_out)
    q = db.query(Room).filter(Room.status != "maintenance")
    if room_type:
        q = q.filter(Room.room_type == _choice(room_type, ROOM_TYPES, "room_type"))
    if guests:
        q = q.filter(Room.capacity >= _positive_int(guests, "guests"))
    return [r for r in q.order_by(Room.number).all() if is_room_available(db, r, ci, co)]


def sync_room_status(db, room):
    """
    Derive the room status from its bookings:
      - maintenance is left alone, only maintenance work clears it
      - occupied while a guest is checked in
      - reserved while a reservation is pending
      - available otherwise
    """
    if room.status == "maintenance":
        return room.status
    statuses = {b.status for b in _active_bookings_for_room(db, room)}
    if "checked-in" in statuses:
        room.status = "occupied"
    elif "reserved" in statuses:
        room.status = "reserved"
    else:
        room.status = "available"
    return room.status


# ------------------------
# Users
# ------------------------

def register_user(db, username, password, name, email, role="guest", phone=None, department=None,
                  position=None, preferences=None):
    _choice(role, ROLES, "role")
    if not username or not password or not name or not email:
        raise ValidationError("username, password, name and email are required")
    if role != "guest" and not department:
        raise ValidationError("department is required for staff accounts")
    if db.query(User).filter_by(username=username).first():
        raise ConflictError("Username already exists")
    if db.query(User).filter_by(email=email).first():
        raise ConflictError("Email already exists")

    common = dict(username=username, password_hash=generate_password_hash(password), name=name,
                  email=email, phone=phone, role=role)
    if role == "guest":
        user = GuestUser(loyalty_points=0, preferences=preferences, **common)
    else:
        user = StaffUser(department=department, position=position, staff_status="active",
                         hire_date=date.today(), **common)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("registered %s user %s", role, username)
    return user


def authenticate(db, username, password):
    user = db.query(User).filter_by(username=username).first()
    if user is None or not check_password_hash(user.password_hash, password or ""):
        logger.warning("failed login for %s", username)
        raise AuthenticationError("Invalid username or password")
    if not user.enabled:
        raise AuthenticationError("Account is disabled")
    if isinstance(user, StaffUser) and user.staff_status == "inactive":
        raise AuthenticationError("Account is inactive")
    user.last_login = utcnow()
    db.commit()
    db.refresh(user)
    return user


def get_user(db, user_id):
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_guest(db, guest_id):
    user = get_user(db, guest_id)
    if not isinstance(user, GuestUser):
        raise ValidationError(f"User {guest_id} is not a guest")
    return user


def list_users(db, role=None):
    q = db.query(User)
    if role:
        q = q.filter_by(role=_choice(role, ROLES, "role"))
    return q.order_by(User.id).all()


def update_user(db, user_id, name=None, email=None, phone=None, enabled=None, preferences=None):
    user = get_user(db, user_id)
    if email is not None and email != user.email:
        if db.query(User).filter_by(email=email).first():
            raise ConflictError("Email already exists")
        user.email = email
    if name is not None:
        user.name = name
    if phone is not None:
        user.phone = phone
    if enabled is not None:
        user.enabled = bool(enabled)
    if preferences is not None and isinstance(user, GuestUser):
        user.preferences = preferences
    db.commit()
    db.refresh(user)
    return user


def set_staff_status(db, user_id, status):
    user = get_user(db, user_id)
    if not isinstance(user, StaffUser):
        raise ValidationError("User is not a staff member")
    user.staff_status = _choice(status, STAFF_STATUSES, "staff_status")
    db.commit()
    db.refresh(user)
    return user


def add_loyalty_points(db, guest_id, points):
    guest = get_guest(db, guest_id)
    guest.loyalty_points = (guest.loyalty_points or 0) + int(points)
    db.commit()
    db.refresh(guest)
    return guest


# ------------------------
# Bookings
# ------------------------

def get_booking(db, booking_id):
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return booking


def list_bookings(db, status=None, guest_id=None, room_id=None):
    q = db.query(Booking)
    if status:
        q = q.filter(Booking.status == _choice(status, BOOKING_STATUSES, "status"))
    if guest_id is not None:
        q = q.filter(Booking.guest_id == guest_id)
    if room_id is not None:
        q = q.filter(Booking.room_id == room_id)
    return q.order_by(Booking.check_in, Booking.id).all()


def active_bookings(db):
    return db.query(Booking).filter(Booking.status.in_(ACTIVE_BOOKING_STATUSES)).order_by(Booking.check_in).all()


def todays_check_ins(db, today=None):
    today = today or date.today()
    return db.query(Booking).filter_by(check_in=today, status="reserved").all()


def todays_check_outs(db, today=None):
    today = today or date.today()
    return db.query(Booking).filter_by(check_out=today, status="checked-in").all()


def _strategy_for(pricing, guest):
    try:
        if pricing == "loyalty":
            return get_pricing_strategy("loyalty", tier=loyalty_tier(guest.loyalty_points))
        return get_pricing_strategy(pricing)
    except ValueError as e:
        raise ValidationError(str(e))


def quote_price(db, room_id, check_in, check_out, guests=1, pricing="standard", guest_id=None):
    room = get_room(db, room_id)
    ci, co = _stay_dates(check_in, check_out)
    guests = _positive_int(guests, "guests")
    if guests > room.capacity:
        raise ValidationError(f"Room {room.number} holds at most {room.capacity} guests")
    guest = get_guest(db, guest_id) if guest_id is not None else None
    if pricing == "loyalty" and guest is None:
        raise ValidationError("loyalty pricing needs a guest")
    strategy = _strategy_for(pricing, guest)
    return {
        "room_id": room.id,
        "check_in": ci,
        "check_out": co,
        "nights": nights_between(ci, co),
        "guests": guests,
        "pricing_strategy": strategy.name,
        "total_price": calculate_price(room.price_per_night, ci, co, strategy, guests=guests),
        "available": is_room_available(db, room, ci, co),
    }


def create_booking(db, guest_id, room_id, check_in, check_out, guests=1, special_requests=None,
                   pricing="standard"):
    guest = get_guest(db, guest_id)
    room = get_room(db, room_id)
    ci, co = _stay_dates(check_in, check_out)
    guests = _positive_int(guests, "guests")
    if guests > room.capacity:
        raise ValidationError(f"Room {room.number} holds at most {room.capacity} guests")
    if room.status == "maintenance":
        raise ConflictError(f"Room {room.number} is under maintenance")
    if not is_room_available(db, room, ci, co):
        logger.warning("double booking refused for room %s %s..%s", room.number, ci, co)
        raise ConflictError(f"Room {room.number} is already booked for the selected dates")

    strategy = _strategy_for(pricing, guest)
    booking = Booking(
        guest_id=guest.id,
        room_id=room.id,
        check_in=ci,
        check_out=co,
        guests=guests,
        total_price=calculate_price(room.price_per_night, ci, co, strategy, guests=guests),
        pricing_strategy=strategy.name,
        status="reserved",
        payment_status="pending",
        amount_paid=Decimal(0),
        special_requests=special_requests,
    )
    db.add(booking)
    db.flush()
    sync_room_status(db, room)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s created: room %s %s..%s total %s", booking.id, room.number, ci, co,
                booking.total_price)
    return booking


def update_booking(db, booking_id, check_in=None, check_out=None, guests=None, room_id=None,
                   special_requests=None, notes=None):
    booking = get_booking(db, booking_id)
    stay_change = any(v is not None for v in (check_in, check_out, guests, room_id))
    if stay_change and booking.status != "reserved":
        raise ConflictError(f"Only reserved bookings can change dates, room or guests (booking is {booking.status})")

    if stay_change:
        old_room = booking.room
        room = get_room(db, room_id) if room_id is not None else old_room
        ci, co = _stay_dates(check_in if check_in is not None else booking.check_in,
                             check_out if check_out is not None else booking.check_out)
        n_guests = _positive_int(guests, "guests") if guests is not None else booking.guests
        if n_guests > room.capacity:
            raise ValidationError(f"Room {room.number} holds at most {room.capacity} guests")
        if room.id != old_room.id and room.status == "maintenance":
            raise ConflictError(f"Room {room.number} is under maintenance")
        if not is_room_available(db, room, ci, co, exclude_booking_id=booking.id):
            raise ConflictError(f"Room {room.number} is already booked for the selected dates")

        strategy = _strategy_for(booking.pricing_strategy, booking.guest)
        booking.room = room
        booking.check_in = ci
        booking.check_out = co
        booking.guests = n_guests
        booking.total_price = calculate_price(room.price_per_night, ci, co, strategy, guests=n_guests)
        db.flush()
        sync_room_status(db, room)
        if room.id != old_room.id:
            sync_room_status(db, old_room)

    if special_requests is not None:
        booking.special_requests = special_requests
    if notes is not None:
        booking.notes = notes
    db.commit()
    db.refresh(booking)
    return booking


def _transition(booking, target):
    if not can_transition(booking.status, target):
        logger.warning("booking %s: illegal transition %s -> %s", booking.id, booking.status, target)
        raise InvalidTransitionError("Booking", booking.status, target)
    booking.status = target


def check_in(db, booking_id, now=None):
    booking = get_booking(db, booking_id)
    room = booking.room
    if booking.status == "reserved" and room.status == "maintenance":
        raise ConflictError(f"Room {room.number} is under maintenance")
    _transition(booking, "checked-in")
    booking.checked_in_at = now or utcnow()
    db.flush()
    sync_room_status(db, room)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s checked in to room %s", booking.id, room.number)
    return booking


def _apply_payment(booking, amount, method):
    booking.amount_paid = (booking.amount_paid or Decimal(0)) + amount
    if method:
        booking.payment_method = method
    if booking.amount_paid >= booking.total_price:
        booking.payment_status = "paid"
    elif booking.amount_paid > 0:
        booking.payment_status = "partially-paid"


def check_out(db, booking_id, payment_method=None, now=None):
    booking = get_booking(db, booking_id)
    if payment_method:
        _choice(payment_method, PAYMENT_METHODS, "payment_method")
    _transition(booking, "checked-out")
    booking.checked_out_at = now or utcnow()
    if payment_method:
        due = booking.total_price - (booking.amount_paid or Decimal(0))
        if due > 0:
            _apply_payment(booking, due, payment_method)
    room = booking.room
    room.is_clean = False
    db.flush()
    sync_room_status(db, room)
    guest = booking.guest
    guest.loyalty_points = (guest.loyalty_points or 0) + int(booking.total_price)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s checked out of room %s", booking.id, room.number)
    return booking


def cancel_booking(db, booking_id, reason=None, enforce_cutoff=False, cutoff_hours=24, now=None):
    booking = get_booking(db, booking_id)
    if enforce_cutoff and booking.status == "reserved":
        if not within_cancellation_window(booking.check_in, now or utcnow(), cutoff_hours):
            raise ConflictError(f"Bookings can only be cancelled up to {cutoff_hours} hours before check-in")
    _transition(booking, "cancelled")
    booking.cancellation_reason = reason
    if booking.amount_paid and booking.amount_paid > 0:
        booking.payment_status = "refunded"
    db.flush()
    sync_room_status(db, booking.room)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s cancelled", booking.id)
    return booking


def mark_no_show(db, booking_id):
    booking = get_booking(db, booking_id)
    _transition(booking, "no-show")
    db.flush()
    sync_room_status(db, booking.room)
    db.commit()
    db.refresh(booking)
    logger.info("booking %s marked no-show", booking.id)
    return booking


def record_payment(db, booking_id, amount, method=None):
    booking = get_booking(db, booking_id)
    if booking.status in ("cancelled", "no-show"):
        raise ConflictError(f"Cannot take payment for a {booking.status} booking")
    if booking.payment_status == "paid":
        raise ConflictError("Booking is already paid")
    amount = _amount(amount, "amount")
    if amount == 0:
        raise ValidationError("amount must be greater than zero")
    if method:
        _choice(method, PAYMENT_METHODS, "payment_method")
    _apply_payment(booking, amount, method)
    db.commit()
    db.refresh(booking)
    return booking


# ------------------------
# Maintenance
# ------------------------

def get_maintenance_request(db, request_id):
    req = db.get(MaintenanceRequest, request_id)
    if req is None:
        raise NotFoundError("Maintenance request", request_id)
    return req


def list_maintenance_requests(db, status=None, room_id=None, assigned_to_id=None, priority=None):
    q = db.query(MaintenanceRequest)
    if status:
        q = q.filter(MaintenanceRequest.status == _choice(status, MAINTENANCE_STATUSES, "status"))
    if room_id is not None:
        q = q.filter(MaintenanceRequest.room_id == room_id)
    if assigned_to_id is not None:
        q = q.filter(MaintenanceRequest.assigned_to_id == assigned_to_id)
    if priority:
        q = q.filter(MaintenanceRequest.priority == _choice(priority, PRIORITIES, "priority"))
    return q.order_by(MaintenanceRequest.created_at, MaintenanceRequest.id).all()


def open_maintenance_requests(db):
    return (db.query(MaintenanceRequest)
            .filter(MaintenanceRequest.status.in_(UNRESOLVED_MAINTENANCE_STATUSES))
            .order_by(MaintenanceRequest.created_at).all())


def unassigned_maintenance_requests(db):
    return (db.query(MaintenanceRequest)
            .filter(MaintenanceRequest.status == "open", MaintenanceRequest.assigned_to_id.is_(None))
            .order_by(MaintenanceRequest.created_at).all())


def high_priority_maintenance_requests(db):
    return [r for r in open_maintenance_requests(db) if r.priority in ("high", "urgent")]


def overdue_maintenance_requests(db, now=None):
    now = now or utcnow()
    return [r for r in open_maintenance_requests(db) if is_overdue(r.created_at, r.priority, r.status, now)]


def _note(req, text, author_id=None):
    req.notes.append(MaintenanceNote(text=text, author_id=author_id, created_at=utcnow()))


def create_maintenance_request(db, room_id, issue_type, description=None, reported_by_id=None,
                               priority="medium", booking_id=None, take_offline=False, now=None):
    room = get_room(db, room_id)
    _choice(issue_type, ISSUE_TYPES, "issue_type")
    _choice(priority, PRIORITIES, "priority")
    now = now or utcnow()

    booking = None
    if booking_id is not None:
        booking = get_booking(db, booking_id)
        if booking.room_id != room.id:
            raise ValidationError(f"Booking {booking.id} is not for room {room.number}")
    else:
        today = now.date()
        booking = (db.query(Booking)
                   .filter(Booking.room_id == room.id, Booking.status == "checked-in",
                           Booking.check_in <= today, Booking.check_out >= today)
                   .first())

    req = MaintenanceRequest(
        room_id=room.id,
        booking_id=booking.id if booking else None,
        reported_by_id=reported_by_id,
        issue_type=issue_type,
        description=description,
        priority=priority,
        status="open",
        room_offline=bool(take_offline),
        created_at=now,
    )
    db.add(req)
    if take_offline:
        room.status = "maintenance"
    db.commit()
    db.refresh(req)
    logger.info("maintenance request %s opened for room %s (%s, %s)", req.id, room.number, issue_type, priority)
    return req


def _maintenance_transition(req, target):
    if not can_transition_maintenance(req.status, target):
        logger.warning("maintenance request %s: illegal transition %s -> %s", req.id, req.status, target)
        raise InvalidTransitionError("Maintenance request", req.status, target)
    req.status = target


def _release_room(db, req):
    room = req.room
    if room.status != "maintenance":
        return
    still_offline = (db.query(MaintenanceRequest)
                     .filter(MaintenanceRequest.room_id == room.id,
                             MaintenanceRequest.id != req.id,
                             MaintenanceRequest.room_offline.is_(True),
                             MaintenanceRequest.status.in_(UNRESOLVED_MAINTENANCE_STATUSES))
                     .count())
    if not still_offline:
        room.status = "available"
        sync_room_status(db, room)


def assign_maintenance_request(db, request_id, staff_id, assigned_by_id=None, now=None):
    req = get_maintenance_request(db, request_id)
    staff = get_user(db, staff_id)
    if staff.role not in ("maintenance", "manager"):
        raise ValidationError("Staff member must be maintenance personnel or manager")
    if req.is_resolved:
        raise InvalidTransitionError("Maintenance request", req.status, "assigned")
    req.assigned_to_id = staff.id
    req.assigned_at = now or utcnow()
    if req.status == "open":
        _maintenance_transition(req, "assigned")
    _note(req, f"Assigned to {staff.name}", assigned_by_id)
    db.commit()
    db.refresh(req)
    logger.info("maintenance request %s assigned to %s", req.id, staff.username)
    return req


def start_maintenance_work(db, request_id, user_id=None, now=None):
    req = get_maintenance_request(db, request_id)
    _maintenance_transition(req, "in-progress")
    req.started_at = now or utcnow()
    _note(req, "Work started", user_id)
    db.commit()
    db.refresh(req)
    return req


def complete_maintenance_work(db, request_id, resolution=None, user_id=None, now=None):
    req = get_maintenance_request(db, request_id)
    _maintenance_transition(req, "completed")
    req.completed_at = now or utcnow()
    if resolution:
        req.resolution = resolution
    _note(req, "Work completed", user_id)
    db.flush()
    if req.room_offline:
        _release_room(db, req)
    db.commit()
    db.refresh(req)
    logger.info("maintenance request %s completed", req.id)
    return req


def cancel_maintenance_request(db, request_id, reason=None, user_id=None):
    req = get_maintenance_request(db, request_id)
    _maintenance_transition(req, "cancelled")
    _note(req, f"Cancelled: {reason}" if reason else "Cancelled", user_id)
    db.flush()
    if req.room_offline:
        _release_room(db, req)
    db.commit()
    db.refresh(req)
    logger.info("maintenance request %s cancelled", req.id)
    return req


def update_maintenance_priority(db, request_id, priority, user_id=None):
    req = get_maintenance_request(db, request_id)
    req.priority = _choice(priority, PRIORITIES, "priority")
    _note(req, f"Priority updated to {priority}", user_id)
    db.commit()
    db.refresh(req)
    return req


def add_maintenance_note(db, request_id, text, user_id=None):
    req = get_maintenance_request(db, request_id)
    if not text or not text.strip():
        raise ValidationError("note text is required")
    _note(req, text.strip(), user_id)
    db.commit()
    db.refresh(req)
    return req


def delete_maintenance_request(db, request_id):
    req = get_maintenance_request(db, request_id)
    if req.room_offline and not req.is_resolved:
        _release_room(db, req)
    db.delete(req)
    db.commit()
