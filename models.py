from sqlalchemy import (create_engine, Column, Integer, String, Date, DateTime, Boolean, Text,
                        Numeric, ForeignKey, JSON)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.pool import StaticPool
from datetime import datetime, timezone

Base = declarative_base()

ROOM_TYPES = ("standard", "deluxe", "suite", "executive")
ROOM_STATUSES = ("available", "occupied", "maintenance", "reserved")

ROLES = ("guest", "receptionist", "maintenance", "manager")
STAFF_ROLES = ("receptionist", "maintenance", "manager")
STAFF_STATUSES = ("active", "inactive", "on-leave")

BOOKING_STATUSES = ("reserved", "checked-in", "checked-out", "cancelled", "no-show")
ACTIVE_BOOKING_STATUSES = ("reserved", "checked-in")
PAYMENT_STATUSES = ("pending", "partially-paid", "paid", "refunded")
PAYMENT_METHODS = ("credit-card", "debit-card", "cash", "bank-transfer")

ISSUE_TYPES = ("plumbing", "electrical", "furniture", "hvac", "cleanliness", "safety", "other")
PRIORITIES = ("low", "medium", "high", "urgent")
MAINTENANCE_STATUSES = ("open", "assigned", "in-progress", "completed", "cancelled")
UNRESOLVED_MAINTENANCE_STATUSES = ("open", "assigned", "in-progress")


def utcnow():
    # naive UTC, SQLite DateTime columns carry no tzinfo
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Room(Base):
    __tablename__ = "rooms"
    id = Column(Integer, primary_key=True)
    number = Column(String(20), unique=True, nullable=False, index=True)
    room_type = Column(String(20), nullable=False, default="standard")
    capacity = Column(Integer, nullable=False, default=2)
    price_per_night = Column(Numeric(10, 2), nullable=False)
    floor = Column(String(10), nullable=True)
    status = Column(String(20), nullable=False, default="available")
    is_clean = Column(Boolean, default=True)
    last_cleaned = Column(DateTime, nullable=True)
    description = Column(Text, nullable=True)
    features = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)

    bookings = relationship("Booking", back_populates="room")
    maintenance_requests = relationship("MaintenanceRequest", back_populates="room")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    user_type = Column(String(10), nullable=False)   # "guest" or "staff", drives polymorphic loading
    username = Column(String(80), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False)
    enabled = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    last_login = Column(DateTime, nullable=True)

    __mapper_args__ = {"polymorphic_on": user_type, "polymorphic_identity": "user"}

    @property
    def is_staff(self):
        return self.role in STAFF_ROLES


class GuestUser(User):
    loyalty_points = Column(Integer, default=0)
    preferences = Column(Text, nullable=True)

    bookings = relationship("Booking", back_populates="guest")

    __mapper_args__ = {"polymorphic_identity": "guest"}


class StaffUser(User):
    department = Column(String(100), nullable=True)
    position = Column(String(100), nullable=True)
    staff_status = Column(String(20), default="active")
    hire_date = Column(Date, nullable=True)

    __mapper_args__ = {"polymorphic_identity": "staff"}


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True)
    guest_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    guests = Column(Integer, nullable=False, default=1)
    total_price = Column(Numeric(10, 2), nullable=False)
    pricing_strategy = Column(String(20), default="standard")
    status = Column(String(20), nullable=False, default="reserved", index=True)
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(50), nullable=True)   # one of PAYMENT_METHODS
    amount_paid = Column(Numeric(10, 2), default=0)
    special_requests = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    checked_in_at = Column(DateTime, nullable=True)
    checked_out_at = Column(DateTime, nullable=True)

    room = relationship("Room", back_populates="bookings")
    guest = relationship("GuestUser", back_populates="bookings")

    @property
    def nights(self):
        return (self.check_out - self.check_in).days

    @property
    def is_active(self):
        return self.status in ACTIVE_BOOKING_STATUSES


class MaintenanceRequest(Base):
    __tablename__ = "maintenance_requests"
    id = Column(Integer, primary_key=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    reported_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    issue_type = Column(String(20), nullable=False, default="other")
    description = Column(Text, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="open", index=True)
    room_offline = Column(Boolean, default=False)   # request put the room into maintenance
    resolution = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    assigned_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    room = relationship("Room", back_populates="maintenance_requests")
    booking = relationship("Booking")
    reported_by = relationship("User", foreign_keys=[reported_by_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    notes = relationship("MaintenanceNote", back_populates="request", order_by="MaintenanceNote.id",
                         cascade="all, delete-orphan")

    @property
    def is_resolved(self):
        return self.status not in UNRESOLVED_MAINTENANCE_STATUSES


class MaintenanceNote(Base):
    __tablename__ = "maintenance_notes"
    id = Column(Integer, primary_key=True)
    request_id = Column(Integer, ForeignKey("maintenance_requests.id"), nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    request = relationship("MaintenanceRequest", back_populates="notes")
    author = relationship("User")


def init_db(db_path="sqlite:///instance/hotel.db"):
    kwargs = {}
    if db_path in ("sqlite://", "sqlite:///:memory:"):
        # a single shared connection, otherwise every session sees an empty database
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    engine = create_engine(db_path, echo=False, future=True, **kwargs)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
