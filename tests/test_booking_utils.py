import sys
import os
import unittest
from datetime import date, datetime
from decimal import Decimal

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from booking_utils import (parse_stay_date, nights_between, overlaps, overlap_nights, can_transition,
                           can_transition_maintenance, get_pricing_strategy, calculate_price,
                           PricingStrategy, StandardPricing, WeekendPricing, SeasonalPricing, LoyaltyPricing,
                           loyalty_tier, within_cancellation_window, is_overdue, sla_deadline,
                           elapsed_label)


class TestParseStayDate(unittest.TestCase):

    def test_iso_string(self):
        self.assertEqual(parse_stay_date("2030-06-10"), date(2030, 6, 10))

    def test_date_passes_through(self):
        self.assertEqual(parse_stay_date(date(2030, 6, 10)), date(2030, 6, 10))

    def test_datetime_is_truncated(self):
        self.assertEqual(parse_stay_date(datetime(2030, 6, 10, 15, 30)), date(2030, 6, 10))

    def test_free_form_text(self):
        self.assertEqual(parse_stay_date("June 10, 2031"), date(2031, 6, 10))

    def test_empty_is_rejected(self):
        with self.assertRaises(ValueError):
            parse_stay_date("  ")

    def test_garbage_is_rejected(self):
        with self.assertRaises(ValueError):
            parse_stay_date("xyzzy")


class TestOverlap(unittest.TestCase):

    def setUp(self):
        self.start = date(2030, 6, 10)
        self.end = date(2030, 6, 13)

    def test_same_day_turnover_does_not_overlap(self):
        self.assertFalse(overlaps(self.start, self.end, date(2030, 6, 13), date(2030, 6, 15)))
        self.assertFalse(overlaps(date(2030, 6, 8), date(2030, 6, 10), self.start, self.end))

    def test_partial_overlap(self):
        self.assertTrue(overlaps(self.start, self.end, date(2030, 6, 12), date(2030, 6, 14)))
        self.assertTrue(overlaps(self.start, self.end, date(2030, 6, 9), date(2030, 6, 11)))

    def test_containment(self):
        self.assertTrue(overlaps(self.start, self.end, date(2030, 6, 11), date(2030, 6, 12)))
        self.assertTrue(overlaps(date(2030, 6, 11), date(2030, 6, 12), self.start, self.end))

    def test_identical(self):
        self.assertTrue(overlaps(self.start, self.end, self.start, self.end))

    def test_disjoint(self):
        self.assertFalse(overlaps(self.start, self.end, date(2030, 7, 1), date(2030, 7, 3)))

    def test_overlap_nights_clipped(self):
        self.assertEqual(overlap_nights(date(2030, 6, 9), date(2030, 6, 13), date(2030, 6, 1), date(2030, 6, 11)), 2)
        self.assertEqual(overlap_nights(self.start, self.end, date(2030, 6, 1), date(2030, 6, 30)), 3)
        self.assertEqual(overlap_nights(self.start, self.end, date(2030, 7, 1), date(2030, 7, 30)), 0)

    def test_nights_between(self):
        self.assertEqual(nights_between(self.start, self.end), 3)
        with self.assertRaises(ValueError):
            nights_between(self.end, self.start)
        with self.assertRaises(ValueError):
            nights_between(self.start, self.start)


class TestTransitions(unittest.TestCase):

    def test_reserved(self):
        self.assertTrue(can_transition("reserved", "checked-in"))
        self.assertTrue(can_transition("reserved", "cancelled"))
        self.assertTrue(can_transition("reserved", "no-show"))
        self.assertFalse(can_transition("reserved", "checked-out"))

    def test_checked_in(self):
        self.assertTrue(can_transition("checked-in", "checked-out"))
        self.assertFalse(can_transition("checked-in", "cancelled"))
        self.assertFalse(can_transition("checked-in", "reserved"))

    def test_terminal_states(self):
        for status in ("checked-out", "cancelled", "no-show"):
            for target in ("reserved", "checked-in", "checked-out", "cancelled", "no-show"):
                self.assertFalse(can_transition(status, target), (status, target))

    def test_unknown_status(self):
        self.assertFalse(can_transition("pending", "reserved"))

    def test_maintenance(self):
        self.assertTrue(can_transition_maintenance("open", "assigned"))
        self.assertFalse(can_transition_maintenance("open", "in-progress"))
        self.assertTrue(can_transition_maintenance("assigned", "in-progress"))
        self.assertTrue(can_transition_maintenance("in-progress", "completed"))
        self.assertFalse(can_transition_maintenance("completed", "open"))


class TestPricing(unittest.TestCase):

    def test_standard_is_nights_times_rate(self):
        price = calculate_price(Decimal("100"), date(2030, 6, 10), date(2030, 6, 13))
        self.assertEqual(price, Decimal("300.00"))

    def test_standard_rounds_to_cents(self):
        price = StandardPricing().calculate_price(Decimal("99.995"), date(2030, 6, 10), date(2030, 6, 11))
        self.assertEqual(price, Decimal("100.00"))

    def test_weekend_nights_cost_more(self):
        # Thursday, Friday and Saturday nights
        price = WeekendPricing().calculate_price(Decimal("100"), date(2030, 6, 13), date(2030, 6, 16))
        self.assertEqual(price, Decimal("350.00"))

    def test_seasonal_rate_per_night(self):
        strategy = SeasonalPricing()
        self.assertEqual(strategy.calculate_price(Decimal("100"), date(2030, 7, 30), date(2030, 8, 2)),
                         Decimal("540.00"))
        self.assertEqual(strategy.calculate_price(Decimal("100"), date(2030, 5, 31), date(2030, 6, 2)),
                         Decimal("270.00"))
        self.assertEqual(strategy.calculate_price(Decimal("100"), date(2030, 1, 5), date(2030, 1, 7)),
                         Decimal("200.00"))

    def test_loyalty_discount(self):
        self.assertEqual(LoyaltyPricing("gold").calculate_price(Decimal("100"), date(2030, 6, 10), date(2030, 6, 13)),
                         Decimal("255.00"))
        self.assertEqual(LoyaltyPricing("Platinum").calculate_price(Decimal("100"), date(2030, 6, 10), date(2030, 6, 11)),
                         Decimal("80.00"))

    def test_strategy_lookup(self):
        self.assertIsInstance(get_pricing_strategy(), StandardPricing)
        self.assertIsInstance(get_pricing_strategy("weekend"), WeekendPricing)
        self.assertEqual(get_pricing_strategy("loyalty", tier="silver").tier, "silver")
        with self.assertRaises(ValueError):
            get_pricing_strategy("surge")

    def test_base_strategy_is_abstract(self):
        with self.assertRaises(TypeError):
            PricingStrategy()

    def test_invalid_range(self):
        with self.assertRaises(ValueError):
            calculate_price(Decimal("100"), date(2030, 6, 13), date(2030, 6, 10))

    def test_loyalty_tiers(self):
        self.assertEqual(loyalty_tier(None), "bronze")
        self.assertEqual(loyalty_tier(999), "bronze")
        self.assertEqual(loyalty_tier(1000), "silver")
        self.assertEqual(loyalty_tier(5000), "gold")
        self.assertEqual(loyalty_tier(25000), "platinum")


class TestCancellationWindow(unittest.TestCase):

    def test_before_cutoff(self):
        self.assertTrue(within_cancellation_window(date(2030, 6, 10), datetime(2030, 6, 8, 23, 0), 24))

    def test_after_cutoff(self):
        self.assertFalse(within_cancellation_window(date(2030, 6, 10), datetime(2030, 6, 9, 1, 0), 24))

    def test_zero_cutoff(self):
        self.assertTrue(within_cancellation_window(date(2030, 6, 10), datetime(2030, 6, 10, 0, 0), 0))


class TestSla(unittest.TestCase):

    def setUp(self):
        self.created = datetime(2030, 1, 1, 8, 0)

    def test_deadline(self):
        self.assertEqual(sla_deadline(self.created, "high"), datetime(2030, 1, 1, 12, 0))
        self.assertEqual(sla_deadline(self.created, "low"), datetime(2030, 1, 4, 8, 0))

    def test_overdue_by_priority(self):
        now = datetime(2030, 1, 1, 13, 0)
        self.assertTrue(is_overdue(self.created, "urgent", "open", now))
        self.assertTrue(is_overdue(self.created, "high", "assigned", now))
        self.assertFalse(is_overdue(self.created, "medium", "open", now))
        self.assertFalse(is_overdue(self.created, "low", "in-progress", now))

    def test_resolved_never_overdue(self):
        now = datetime(2030, 2, 1)
        self.assertFalse(is_overdue(self.created, "urgent", "completed", now))
        self.assertFalse(is_overdue(self.created, "urgent", "cancelled", now))

    def test_elapsed_label(self):
        self.assertEqual(elapsed_label(self.created, datetime(2030, 1, 1, 9, 0)), "1 hour")
        self.assertEqual(elapsed_label(self.created, datetime(2030, 1, 1, 11, 30)), "3 hours")
        self.assertEqual(elapsed_label(self.created, datetime(2030, 1, 2, 8, 0)), "1 day")
        self.assertEqual(elapsed_label(self.created, datetime(2030, 1, 3, 10, 0)), "2 days")


if __name__ == '__main__':
    unittest.main()
