from collections import Counter, defaultdict
from datetime import date, datetime, time
from decimal import Decimal

from models import (Room, Booking, MaintenanceRequest, ROOM_TYPES, ROOM_STATUSES, utcnow)
from booking_utils import parse_stay_date, overlap_nights, is_overdue
from services import ValidationError, open_maintenance_requests, todays_check_ins, todays_check_outs

# statuses whose nights count as sold
OCCUPYING_STATUSES = ("reserved", "checked-in", "checked-out")


def _report_range(start, end):
    try:
        start = parse_stay_date(start)
        end = parse_stay_date(end)
    except ValueError as e:
        raise ValidationError(str(e))
    if end <= start:
        raise ValidationError("end must be after start")
    return start, end


def _rate(part, whole):
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def occupancy_report(db, start, end):
    start, end = _report_range(start, end)
    total_days = (end - start).days
    rooms = db.query(Room).all()
    bookings = (db.query(Booking)
                .filter(Booking.status.in_(OCCUPYING_STATUSES),
                        Booking.check_in < end, Booking.check_out > start)
                .all())

    booked_by_type = Counter()
    for b in bookings:
        booked_by_type[b.room.room_type] += overlap_nights(b.check_in, b.check_out, start, end)
    rooms_by_type = Counter(r.room_type for r in rooms)

    total_room_days = len(rooms) * total_days
    total_booked = sum(booked_by_type.values())
    by_type = {}
    for room_type in ROOM_TYPES:
        if rooms_by_type[room_type]:
            by_type[room_type] = _rate(booked_by_type[room_type], rooms_by_type[room_type] * total_days)

    return {
        "start": start,
        "end": end,
        "total_rooms": len(rooms),
        "total_days": total_days,
        "total_room_days": total_room_days,
        "total_booked_days": total_booked,
        "occupancy_rate": _rate(total_booked, total_room_days),
        "occupancy_by_room_type": by_type,
    }


def revenue_report(db, start, end):
    """
    Money collected on stays starting in [start, end).

    Refunded bookings and bookings with nothing paid yet are left out.
    """
    start, end = _report_range(start, end)
    bookings = (db.query(Booking)
                .filter(Booking.check_in >= start, Booking.check_in < end,
                        Booking.payment_status != "refunded")
                .all())
    paid = [b for b in bookings if b.amount_paid and b.amount_paid > 0]

    total = sum((b.amount_paid for b in paid), Decimal(0))
    by_type = defaultdict(Decimal)
    by_method = defaultdict(Decimal)
    for b in paid:
        by_type[b.room.room_type] += b.amount_paid
        by_method[b.payment_method or "unspecified"] += b.amount_paid

    average = (total / len(paid)).quantize(Decimal("0.01")) if paid else Decimal("0.00")
    return {
        "start": start,
        "end": end,
        "total_bookings": len(bookings),
        "paid_bookings": len(paid),
        "total_revenue": total,
        "average_revenue_per_booking": average,
        "revenue_by_room_type": {t: by_type.get(t, Decimal(0)) for t in ROOM_TYPES},
        "revenue_by_payment_method": dict(by_method),
    }


def maintenance_report(db, start, end, now=None):
    start, end = _report_range(start, end)
    now = now or utcnow()
    requests = (db.query(MaintenanceRequest)
                .filter(MaintenanceRequest.created_at >= datetime.combine(start, time.min),
                        MaintenanceRequest.created_at < datetime.combine(end, time.min))
                .all())

    resolution_hours = [
        (r.completed_at - r.created_at).total_seconds() / 3600
        for r in requests
        if r.status == "completed" and r.completed_at and r.created_at
    ]
    return {
        "start": start,
        "end": end,
        "total_requests": len(requests),
        "count_by_status": dict(Counter(r.status for r in requests)),
        "count_by_issue_type": dict(Counter(r.issue_type for r in requests)),
        "count_by_priority": dict(Counter(r.priority for r in requests)),
        "average_resolution_hours": round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else 0.0,
        "overdue": sum(1 for r in requests if is_overdue(r.created_at, r.priority, r.status, now)),
    }


def summary_report(db, today=None, now=None):
    today = today or date.today()
    now = now or utcnow()
    rooms = db.query(Room).all()
    by_status = Counter(r.status for r in rooms)
    open_requests = open_maintenance_requests(db)

    return {
        "date": today,
        "total_rooms": len(rooms),
        "rooms_by_status": {s: by_status.get(s, 0) for s in ROOM_STATUSES},
        "occupancy_rate": _rate(by_status.get("occupied", 0), len(rooms)),
        "check_ins_today": len(todays_check_ins(db, today)),
        "check_outs_today": len(todays_check_outs(db, today)),
        "open_maintenance_requests": len(open_requests),
        "high_priority_maintenance_requests": sum(1 for r in open_requests if r.priority in ("high", "urgent")),
        "overdue_maintenance_requests": sum(1 for r in open_requests
                                            if is_overdue(r.created_at, r.priority, r.status, now)),
    }
