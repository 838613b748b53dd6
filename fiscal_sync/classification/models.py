from enum import Enum


class Direction(str, Enum):
    ISSUED = "issued"
    RECEIVED = "received"


class InvoiceStatus(str, Enum):
    RECEIVED = "received"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
