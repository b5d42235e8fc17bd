from .config import RetentionConfig
from .sweeper import RetentionSweeper, SweeperState

__all__ = ["RetentionConfig", "RetentionSweeper", "SweeperState"]
