"""
ANSI color codes for the coordinator's console output
"""


class Colors:
    """ANSI color codes plus the few styles the console uses"""
    RESET = "\033[0m"
    BOLD = "\033[1m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    GREY = "\033[90m"

    @classmethod
    def colorize(cls, text: str, color: str) -> str:
        """Wrap text in color codes"""
        return f"{color}{text}{cls.RESET}"

    @classmethod
    def banner(cls, text: str) -> str:
        """Startup banner title (bold cyan)"""
        return cls.colorize(text, cls.BOLD + cls.CYAN)

    @classmethod
    def dim(cls, text: str) -> str:
        """Hints and idle status lines"""
        return cls.colorize(text, cls.GREY)

    @classmethod
    def warning(cls, text: str) -> str:
        return cls.colorize(text, cls.YELLOW)

    @classmethod
    def error(cls, text: str) -> str:
        return cls.colorize(text, cls.RED)

    @classmethod
    def success(cls, text: str) -> str:
        return cls.colorize(text, cls.GREEN)
