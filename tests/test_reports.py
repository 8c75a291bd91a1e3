import sys
import os
import unittest
from datetime import date, datetime
from decimal import Decimal

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import init_db
import reports
import services
from services import ValidationError


class TestReports(unittest.TestCase):

    def setUp(self):
        self.db = init_db("sqlite://")()
        self.standard = services.create_room(self.db, "101", room_type="standard")
        self.deluxe = services.create_room(self.db, "201", room_type="deluxe")
        guest = services.register_user(self.db, "alice", "secret", "Alice", "alice@example.com")
        self.tech = services.register_user(self.db, "tech", "secret", "Tech", "tech@example.com",
                                           role="maintenance", department="Maintenance")

        # two nights of this stay fall inside June 1-11
        self.upcoming = services.create_booking(self.db, guest.id, self.standard.id, "2030-06-09", "2030-06-13")
        services.record_payment(self.db, self.upcoming.id, 100, method="cash")

        finished = services.create_booking(self.db, guest.id, self.deluxe.id, "2030-06-01", "2030-06-04")
        services.check_in(self.db, finished.id)
        services.check_out(self.db, finished.id, payment_method="credit-card")

        cancelled = services.create_booking(self.db, guest.id, self.standard.id, "2030-06-02", "2030-06-04")
        services.cancel_booking(self.db, cancelled.id)

        refunded = services.create_booking(self.db, guest.id, self.standard.id, "2030-06-05", "2030-06-07")
        services.record_payment(self.db, refunded.id, 50, method="cash")
        services.cancel_booking(self.db, refunded.id)

    def tearDown(self):
        self.db.close()

    def test_occupancy(self):
        report = reports.occupancy_report(self.db, "2030-06-01", "2030-06-11")
        self.assertEqual(report["start"], date(2030, 6, 1))
        self.assertEqual(report["total_rooms"], 2)
        self.assertEqual(report["total_days"], 10)
        self.assertEqual(report["total_room_days"], 20)
        self.assertEqual(report["total_booked_days"], 5)
        self.assertEqual(report["occupancy_rate"], 25.0)
        self.assertEqual(report["occupancy_by_room_type"], {"standard": 20.0, "deluxe": 30.0})

    def test_occupancy_empty_hotel(self):
        db = init_db("sqlite://")()
        report = reports.occupancy_report(db, "2030-06-01", "2030-06-11")
        self.assertEqual(report["occupancy_rate"], 0.0)
        self.assertEqual(report["occupancy_by_room_type"], {})
        db.close()

    def test_revenue(self):
        report = reports.revenue_report(self.db, "2030-06-01", "2030-06-11")
        self.assertEqual(report["total_bookings"], 3)
        self.assertEqual(report["paid_bookings"], 2)
        self.assertEqual(report["total_revenue"], Decimal("700.00"))
        self.assertEqual(report["average_revenue_per_booking"], Decimal("350.00"))
        self.assertEqual(report["revenue_by_room_type"]["standard"], Decimal("100.00"))
        self.assertEqual(report["revenue_by_room_type"]["deluxe"], Decimal("600.00"))
        self.assertEqual(report["revenue_by_room_type"]["suite"], Decimal(0))
        self.assertEqual(report["revenue_by_payment_method"], {"cash": Decimal("100.00"), "credit-card": Decimal("600.00")})

    def test_revenue_outside_range(self):
        report = reports.revenue_report(self.db, "2030-07-01", "2030-08-01")
        self.assertEqual(report["total_bookings"], 0)
        self.assertEqual(report["total_revenue"], Decimal(0))
        self.assertEqual(report["average_revenue_per_booking"], Decimal("0.00"))

    def test_maintenance(self):
        fixed = services.create_maintenance_request(self.db, self.deluxe.id, "hvac", priority="high",
                                                    now=datetime(2030, 6, 2, 8, 0))
        services.assign_maintenance_request(self.db, fixed.id, self.tech.id)
        services.start_maintenance_work(self.db, fixed.id)
        services.complete_maintenance_work(self.db, fixed.id, now=datetime(2030, 6, 2, 12, 0))
        services.create_maintenance_request(self.db, self.standard.id, "plumbing", priority="urgent",
                                            now=datetime(2030, 6, 3, 8, 0))
        services.create_maintenance_request(self.db, self.standard.id, "furniture",
                                            now=datetime(2030, 6, 20, 8, 0))

        report = reports.maintenance_report(self.db, "2030-06-01", "2030-06-11", now=datetime(2030, 6, 3, 10, 0))
        self.assertEqual(report["total_requests"], 2)
        self.assertEqual(report["count_by_status"], {"completed": 1, "open": 1})
        self.assertEqual(report["count_by_issue_type"], {"hvac": 1, "plumbing": 1})
        self.assertEqual(report["count_by_priority"], {"high": 1, "urgent": 1})
        self.assertEqual(report["average_resolution_hours"], 4.0)
        self.assertEqual(report["overdue"], 1)

    def test_summary(self):
        services.check_in(self.db, self.upcoming.id)
        services.create_maintenance_request(self.db, self.deluxe.id, "electrical", priority="urgent",
                                            now=datetime(2030, 6, 13, 8, 0))
        services.create_maintenance_request(self.db, self.deluxe.id, "furniture", priority="low",
                                            now=datetime(2030, 6, 13, 8, 0))

        report = reports.summary_report(self.db, today=date(2030, 6, 13), now=datetime(2030, 6, 13, 12, 0))
        self.assertEqual(report["total_rooms"], 2)
        self.assertEqual(report["rooms_by_status"], {"available": 1, "occupied": 1, "reserved": 0, "maintenance": 0})
        self.assertEqual(report["occupancy_rate"], 50.0)
        self.assertEqual(report["check_ins_today"], 0)
        self.assertEqual(report["check_outs_today"], 1)
        self.assertEqual(report["open_maintenance_requests"], 2)
        self.assertEqual(report["high_priority_maintenance_requests"], 1)
        self.assertEqual(report["overdue_maintenance_requests"], 1)

    def test_invalid_range(self):
        with self.assertRaises(ValidationError):
            reports.occupancy_report(self.db, "2030-06-10", "2030-06-10")
        with self.assertRaises(ValidationError):
            reports.revenue_report(self.db, "2030-06-10", "2030-06-01")
        with self.assertRaises(ValidationError):
            reports.maintenance_report(self.db, "xyzzy", "2030-06-01")


if __name__ == '__main__':
    unittest.main()
