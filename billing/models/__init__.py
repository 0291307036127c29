from billing.models.billing_period import BillingPeriod
from billing.models.charge import Charge
from billing.models.audit_log import AuditLog
from billing.models.idempotency_key import IdempotencyKeyRecord

__all__ = ["BillingPeriod", "Charge", "AuditLog", "IdempotencyKeyRecord"]
