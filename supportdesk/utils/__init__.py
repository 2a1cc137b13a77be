from supportdesk.utils.logging import setup_logging
from supportdesk.utils.timeouts import run_bounded

__all__ = ["setup_logging", "run_bounded"]
