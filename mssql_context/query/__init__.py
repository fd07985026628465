from .executor import BoundedExecutor, clamp_max_rows
from .guard import QueryGuard

__all__ = ["BoundedExecutor", "QueryGuard", "clamp_max_rows"]
