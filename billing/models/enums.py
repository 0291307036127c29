from __future__ import annotations
from enum import Enum


class ChargeType(str, Enum):
    rent = "rent"
    utilities = "utilities"
    transport = "transport"
    other = "other"


class ChargeStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    disputed = "disputed"
    cancelled = "cancelled"
    processed = "processed"


class BillingStatus(str, Enum):
    # payroll deduction window lifecycle
    draft = "draft"
    processing = "processing"
    completed = "completed"
    exported = "exported"
    cancelled = "cancelled"
