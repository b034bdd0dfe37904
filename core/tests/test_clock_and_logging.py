"""
core/tests/test_clock_and_logging.py

FixedClock, date helpers and logging setup.
"""

from __future__ import annotations

import io
import logging
import unittest
from datetime import datetime, timedelta, timezone

from core.common.clock import FixedClock, SystemClock
from core.config.config_service import LoggingConfig
from core.helpers.date_time_helper import ensure_utc, format_local_date, from_iso, to_iso
from core.logging.logic.log_setup import configure_logging


class TestClock(unittest.TestCase):
    def test_fixed_clock_advances(self) -> None:
        start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        clock = FixedClock(start)
        self.assertEqual(clock.now(), start)
        self.assertEqual(clock.advance(days=7), start + timedelta(days=7))
        clock.set(datetime(2025, 1, 1))
        self.assertEqual(clock.now(), datetime(2025, 1, 1, tzinfo=timezone.utc))

    def test_system_clock_is_aware(self) -> None:
        self.assertIsNotNone(SystemClock().now().tzinfo)


class TestDateHelpers(unittest.TestCase):
    def test_iso_round_trip(self) -> None:
        dt = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
        self.assertEqual(to_iso(dt), "2024-03-01T09:30:00+00:00")
        self.assertEqual(from_iso(to_iso(dt)), dt)
        self.assertIsNone(to_iso(None))
        self.assertIsNone(from_iso(""))

    def test_naive_means_utc(self) -> None:
        self.assertEqual(ensure_utc(datetime(2024, 1, 1)).tzinfo, timezone.utc)

    def test_local_date_crosses_midnight(self) -> None:
        late = datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
        self.assertEqual(format_local_date(late), "02.01.2024")
        self.assertEqual(format_local_date(late, timezone.utc), "01.01.2024")
        self.assertEqual(format_local_date(None), "")


class TestLogSetup(unittest.TestCase):
    def tearDown(self) -> None:
        for name in ("core", "documents", "signature"):
            lg = logging.getLogger(name)
            for h in list(lg.handlers):
                if getattr(h, "_docsign_handler", False):
                    lg.removeHandler(h)
            lg.setLevel(logging.NOTSET)

    def test_configure_sets_level_and_format(self) -> None:
        stream = io.StringIO()
        configure_logging(LoggingConfig(level="warning", format="%(levelname)s:%(name)s:%(message)s"),
                          handler=logging.StreamHandler(stream))
        logging.getLogger("documents.services.signing_service").info("hidden")
        logging.getLogger("documents.services.signing_service").warning("shown")
        self.assertEqual(stream.getvalue().strip(), "WARNING:documents.services.signing_service:shown")

    def test_reconfigure_does_not_stack_handlers(self) -> None:
        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())
        tagged = [h for h in logging.getLogger("core").handlers if getattr(h, "_docsign_handler", False)]
        self.assertEqual(len(tagged), 1)

    def test_unknown_level(self) -> None:
        with self.assertRaises(ValueError):
            configure_logging(LoggingConfig(level="LOUD"))


if __name__ == "__main__":
    unittest.main()
