from __future__ import annotations

import logging
import unittest

from homecourt.log_buffer import BufferHandler


class BufferHandlerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.handler = BufferHandler(capacity=3)
        self.logger = logging.getLogger("homecourt.tests.buffer")
        self.logger.propagate = False
        self.logger.setLevel(logging.DEBUG)
        self.logger.addHandler(self.handler)

    def tearDown(self) -> None:
        self.logger.removeHandler(self.handler)
        self.logger.propagate = True

    def test_keeps_newest_records_first_up_to_capacity(self) -> None:
        for n in range(5):
            self.logger.info("message %d", n)

        messages = [entry["message"] for entry in self.handler.entries()]

        self.assertEqual(["message 4", "message 3", "message 2"], messages)

    def test_debug_records_are_not_buffered(self) -> None:
        self.logger.debug("state change")

        self.assertEqual([], self.handler.entries())

    def test_filters_by_level_logger_and_limit(self) -> None:
        self.logger.info("applied")
        self.logger.warning("rejected")
        logging.getLogger("homecourt.tests.buffer.child").error("failed")

        warnings = self.handler.entries(min_level="warning")
        child = self.handler.entries(logger_prefix="homecourt.tests.buffer.child")

        self.assertEqual(["failed", "rejected"], [entry["message"] for entry in warnings])
        self.assertEqual(["failed"], [entry["message"] for entry in child])
        self.assertEqual(1, len(self.handler.entries(limit=1)))


if __name__ == "__main__":
    unittest.main()
