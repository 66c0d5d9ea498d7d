import enum


class SaleStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    cancelled = "cancelled"


class MovementType(str, enum.Enum):
    sale = "SALE"
    reversal = "REVERSAL"
    adjustment = "ADJUSTMENT"
    compensation = "COMPENSATION"
