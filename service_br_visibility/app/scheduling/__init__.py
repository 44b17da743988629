from .timer import AsyncioTimer, Timer, TimerHandle
from .scheduler import Scheduler

__all__ = ["AsyncioTimer", "Scheduler", "Timer", "TimerHandle"]
