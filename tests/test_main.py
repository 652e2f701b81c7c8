"""
Tests for the coordinator wiring
"""

import json
import os
import tempfile
import time
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from src.main import RecruitCoordinator
from src.modules.applicant_registry import RegistryEntry
from src.modules.chat_platform import DetachedChatClient


class TestRecruitCoordinator(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name)
        self.env = {
            "DATA_DIR": str(self.base / "data"),
            "LOG_FILE": str(self.base / "logs" / "coordinator.log"),
            "SWEEP_ENABLED": "false",
        }

    def tearDown(self):
        self.tmp.cleanup()

    def _coordinator(self, **env):
        with patch.dict(os.environ, {**self.env, **env}, clear=True), \
             patch.object(RecruitCoordinator, "_setup_logging"):
            return RecruitCoordinator(str(self.base / "missing.env"))

    def test_defaults_to_detached_client(self):
        coordinator = self._coordinator()
        self.assertIsInstance(coordinator.chat_client, DetachedChatClient)
        self.assertIs(coordinator.threads.client, coordinator.chat_client)

    def test_open_and_stop_persist_registry(self):
        coordinator = self._coordinator()
        coordinator.open()
        coordinator.registry.register(RegistryEntry(
            owner_key="user-1",
            resource_tag="user-1#0001",
            resource_id="thread-1",
            external_url="https://chat.example/thread-1",
            correlation_key="#2PP",
        ))
        coordinator.stop()

        self.assertFalse(coordinator.running)
        doc = json.loads((self.base / "data" / "open-recruit-applicants.json").read_text())
        self.assertEqual([e["threadId"] for e in doc["entries"]], ["thread-1"])

    def test_sweeper_retires_stale_threads_on_open(self):
        coordinator = self._coordinator(SWEEP_ENABLED="true")
        coordinator.registry.register(RegistryEntry(
            owner_key="user-1",
            resource_tag="user-1#0001",
            resource_id="thread-1",
            external_url="https://chat.example/thread-1",
            correlation_key="#2PP",
            opened_at=datetime.now(timezone.utc) - timedelta(days=30),
        ))

        coordinator.open()
        try:
            deadline = time.monotonic() + 5
            while len(coordinator.registry) and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            coordinator.stop()

        self.assertEqual(len(coordinator.registry), 0)
        self.assertEqual(coordinator.metrics.entries_retired, 1)

    def test_invalid_config_blocks_open(self):
        coordinator = self._coordinator(SWEEP_STALE_AFTER_DAYS="0")
        with self.assertRaises(ValueError):
            coordinator.open()


if __name__ == '__main__':
    unittest.main()
