from .adjustment import PayrollAdjustment
from .employee import Employee
from .organization import Organization
from .payroll_run import PayrollRun
from .payroll_slip import PayrollSlip
from .tax_config import TaxConfig

__all__ = ["Organization", "Employee", "TaxConfig", "PayrollAdjustment", "PayrollRun", "PayrollSlip"]
