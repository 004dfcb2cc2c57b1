# storefront/domain/enums.py
import enum


class OrderStatus(str, enum.Enum):
    pending = "PENDING"
    complete = "COMPLETE"
    failed = "FAILED"
