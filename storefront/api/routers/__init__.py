from . import carts
from . import orders

__all__ = [
    "carts",
    "orders",
]
