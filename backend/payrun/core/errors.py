"""Domain exceptions raised by the payroll core.

Routers translate these into HTTP responses; the orchestrator absorbs the
per-employee ones (``ExternalServiceError`` and its subclasses).
"""


class PayrollError(Exception):
    """Base class for payroll domain errors."""


class PayrollAlreadyProcessed(PayrollError):
    def __init__(self, organization_id: int, pay_period: str):
        self.organization_id = organization_id
        self.pay_period = pay_period
        super().__init__("Payroll already processed for this period")


class OrganizationNotFound(PayrollError):
    def __init__(self, organization_id: int):
        self.organization_id = organization_id
        super().__init__(f"Organization {organization_id} not found")


class PayrollRunNotFound(PayrollError):
    def __init__(self, run_id: int):
        self.run_id = run_id
        super().__init__(f"Payroll run {run_id} not found")


class InvalidPayPeriod(PayrollError, ValueError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid pay period {value!r}; expected YYYY-MM")


class InvalidRunTransition(PayrollError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move payroll run from {current.value} to {target.value}")


class ExternalServiceError(PayrollError):
    """A call to a third-party service failed."""

    service = "external"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.service} error: {message}")


class GatewayError(ExternalServiceError):
    service = "Monnify API"


class NotificationError(ExternalServiceError):
    service = "Email"


class DispatcherUnavailable(PayrollError):
    def __init__(self):
        super().__init__("Payroll dispatcher is not accepting runs")
