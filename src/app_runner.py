import sys
import signal
from pathlib import Path
from typing import Optional, List, NoReturn

from src.utils.config import Config
from src.utils.colors import Colors


class AppRunner:
    """Encapsulates the startup, configuration verification, and execution logic of the Recruit Coordinator."""

    def __init__(self, args: Optional[List[str]] = None) -> None:
        """
        Initialize the runner with CLI arguments.

        Args:
            args: Command line arguments (defaults to sys.argv)
        """
        self.args = args if args is not None else sys.argv
        self.config_file = self.args[1] if len(self.args) > 1 else ".env"

    def run(self) -> None:
        """Execute the main application flow."""
        self.setup_signal_handlers()
        self.print_banner()
        self.check_config_file()
        self.validate_config()
        self.start_coordinator()

    def setup_signal_handlers(self) -> None:
        """Register handlers for graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    @staticmethod
    def _signal_handler(signum, frame) -> NoReturn:
        """Handle shutdown signals."""
        print("\nReceived shutdown signal, stopping gracefully...")
        raise KeyboardInterrupt

    def print_banner(self) -> None:
        """Print the application startup banner."""
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print(Colors.banner("Recruit Coordinator"))
        print(Colors.dim("Open thread registry, DM sessions and CWL war cache"))
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print()

    def check_config_file(self) -> None:
        """Warn when the configuration file is missing; environment defaults apply."""
        if Path(self.config_file).exists():
            return

        print(Colors.warning(f"Configuration file '{self.config_file}' not found; using environment and defaults."))
        if Path(".env.example").exists():
            print(Colors.dim(f"You can start from the template: cp .env.example {self.config_file}"))

    def validate_config(self) -> None:
        """Validate the configuration and exit with a readable message if it is invalid."""
        try:
            Config(self.config_file).validate()
        except ValueError as e:
            print(f"\n{Colors.RED}Configuration Error:{Colors.RESET} {e}")
            print(f"\nPlease edit {Colors.BOLD}{self.config_file}{Colors.RESET} and try again.")
            sys.exit(1)

    def start_coordinator(self) -> None:
        """Instantiate and start the coordinator."""
        from src.main import RecruitCoordinator
        print(Colors.success("Starting coordinator..."))
        coordinator = RecruitCoordinator(self.config_file)
        coordinator.start()


if __name__ == "__main__":
    AppRunner().run()
