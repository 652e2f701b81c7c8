import unittest
import logging
from src.utils.logging_utils import ColoredFormatter
from src.utils.colors import Colors


def make_record(level, msg):
    return logging.LogRecord(
        name="test", level=level, pathname="test.py", lineno=1,
        msg=msg, args=(), exc_info=None
    )


class TestColoredFormatter(unittest.TestCase):
    def setUp(self):
        self.formatter = ColoredFormatter("%(levelname)s %(message)s")

    def test_level_colors(self):
        cases = [
            (logging.DEBUG, Colors.GREY, "DEBUG"),
            (logging.INFO, Colors.BLUE, "INFO"),
            (logging.WARNING, Colors.YELLOW, "WARNING"),
            (logging.ERROR, Colors.RED, "ERROR"),
            (logging.CRITICAL, Colors.BOLD + Colors.RED, "CRITICAL"),
        ]
        for level, color, name in cases:
            with self.subTest(level=name):
                formatted = self.formatter.format(make_record(level, "plain message"))
                self.assertIn(f"{color}{name}{Colors.RESET}", formatted)
                self.assertIn(" plain message", formatted)

    def test_sweep_cycle_header_highlighted(self):
        formatted = self.formatter.format(
            make_record(logging.INFO, "=== Sweep cycle 3: 4 open thread(s) ===")
        )
        self.assertIn(f"{Colors.MAGENTA}{Colors.BOLD}=== Sweep cycle 3", formatted)

    def test_idle_wait_dimmed(self):
        formatted = self.formatter.format(make_record(logging.DEBUG, "Next sweep in 3600 seconds"))
        self.assertIn(f"{Colors.GREY}Next sweep in 3600 seconds{Colors.RESET}", formatted)

    def test_retired_thread_highlighted(self):
        formatted = self.formatter.format(
            make_record(logging.INFO, "Retired stale recruit thread thread-1")
        )
        self.assertIn(f"{Colors.GREEN}Retired stale recruit thread thread-1{Colors.RESET}", formatted)

    def test_record_not_modified(self):
        """Ensure the original record is not modified"""
        record = make_record(logging.INFO, "=== Sweep cycle 1: 1 open thread(s) ===")
        original_levelname = record.levelname
        original_msg = record.msg

        self.formatter.format(record)

        self.assertEqual(record.levelname, original_levelname)
        self.assertEqual(record.msg, original_msg)


if __name__ == '__main__':
    unittest.main()
