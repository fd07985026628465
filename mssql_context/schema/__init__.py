from .cache import SchemaCache
from .manager import SchemaManager

__all__ = ["SchemaCache", "SchemaManager"]
