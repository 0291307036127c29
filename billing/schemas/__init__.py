from billing.schemas.primitives import ApiModel
from billing.schemas.proration import ChargeCalculationRequest, CalculationResponse, CalculationResultOut
from billing.schemas.charges import ChargeCreateRequest, ChargeUpdateRequest, ChargeStatusRequest, ChargeOut
from billing.schemas.billing_periods import BillingPeriodCreateRequest, BillingPeriodStatusRequest, BillingPeriodOut
from billing.schemas.analytics import BillingSummaryOut, StaffSummaryOut
from billing.schemas.audit import AuditEntryOut
