#!/usr/bin/env python3
"""
Recruit Coordinator
Main orchestrator that wires the stores and runs the stale thread sweeper
"""

import sys
import time
import logging
import signal
from datetime import timedelta
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.utils.config import Config
from src.utils.logging_utils import ColoredFormatter
from src.utils.metrics import CoordinatorMetrics
from src.utils.structured_logging import JSONFormatter
from src.modules.applicant_registry import ApplicantRegistry
from src.modules.chat_platform import ChatClient, DetachedChatClient
from src.modules.config_store import RecruitConfigStore
from src.modules.session_cache import SessionCache
from src.modules.sweep_scheduler import SweepScheduler, ThreadCloser
from src.modules.thread_workflow import ThreadOpenCoordinator
from src.modules.war_cache import WarCache


class RecruitCoordinator:
    """Owns every store and the background sweeper for one process"""

    def __init__(self, config_file: str = ".env", chat_client: Optional[ChatClient] = None):
        """
        Initialize the coordinator

        Args:
            config_file: Path to configuration file
            chat_client: Chat platform client; without one, stale threads are
                retired from the registry without being closed on the platform
        """
        self.config = Config(config_file)

        self._setup_logging()

        self.logger = logging.getLogger("RecruitCoordinator")
        self.logger.info("Initializing Recruit Coordinator")

        if chat_client is None:
            self.logger.warning("No chat client attached; stale threads will not be closed on the platform")
            chat_client = DetachedChatClient()
        self.chat_client = chat_client

        storage = self.config.storage
        self.metrics = CoordinatorMetrics()
        self.registry = ApplicantRegistry(storage.registry_path, metrics=self.metrics)
        self.recruit_config = RecruitConfigStore(storage.config_path)
        self.sessions = SessionCache(
            ttl_seconds=self.config.sessions.ttl_seconds,
            max_sessions=self.config.sessions.max_sessions,
        )
        self.war_cache = WarCache(storage.war_cache_path, metrics=self.metrics)

        closer = ThreadCloser(self.chat_client, self.config.sweep.close_message)
        self.threads = ThreadOpenCoordinator(self.registry, self.chat_client, discard=closer.finalize)

        self.sweeper = SweepScheduler(
            self.registry,
            closer.finalize,
            interval_seconds=self.config.sweep.interval_seconds,
            stale_after=timedelta(days=self.config.sweep.stale_after_days),
            metrics=self.metrics,
        )

        self.running = False

    def _setup_logging(self):
        """Setup logging configuration"""
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        log_path = Path(self.config.system.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        level_name = str(self.config.system.log_level).upper()
        level = logging._nameToLevel.get(level_name, logging.INFO)

        file_handler = logging.FileHandler(self.config.system.log_file)
        console_handler = logging.StreamHandler(sys.stdout)
        if self.config.system.log_format == "json":
            json_formatter = JSONFormatter(static_fields={"service": "recruit-coordinator"})
            file_handler.setFormatter(json_formatter)
            console_handler.setFormatter(json_formatter)
        else:
            file_handler.setFormatter(logging.Formatter(log_format))
            if sys.stdout.isatty():
                console_handler.setFormatter(ColoredFormatter(log_format))
            else:
                console_handler.setFormatter(logging.Formatter(log_format))

        logging.basicConfig(level=level, handlers=[file_handler, console_handler])

        if level_name not in logging._nameToLevel:
            logging.getLogger("RecruitCoordinator").warning(
                "Invalid log level '%s'; defaulting to INFO",
                self.config.system.log_level
            )

    def open(self):
        """Validate configuration, load durable state and start the sweeper"""
        self.config.validate()
        self.registry.open()
        if self.config.sweep.enabled:
            self.sweeper.start()
        else:
            self.logger.info("Sweeper disabled by configuration")
        self.running = True

    def start(self):
        """Open the coordinator and block until a shutdown signal arrives"""
        try:
            self.open()
            self.logger.info("Recruit Coordinator running")
            while self.running:
                time.sleep(1)
        except KeyboardInterrupt:
            self.logger.info("Received shutdown signal")
            self.stop()
        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            self.stop()
            sys.exit(1)

    def stop(self):
        """Stop the sweeper and flush pending writes"""
        self.logger.info("Stopping Recruit Coordinator")
        self.running = False
        self.sweeper.stop(timeout=30)
        self.registry.close()
        self.recruit_config.close()
        self.logger.info(f"Coordinator stopped: {self.metrics.get_summary()}")


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    print("\nReceived shutdown signal, stopping gracefully...")
    raise KeyboardInterrupt


def main():
    """Main entry point"""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    config_file = sys.argv[1] if len(sys.argv) > 1 else ".env"
    coordinator = RecruitCoordinator(config_file)
    coordinator.start()


if __name__ == "__main__":
    main()
