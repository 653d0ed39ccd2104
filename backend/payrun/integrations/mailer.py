from __future__ import annotations

import smtplib
from dataclasses import dataclass
from decimal import Decimal
from email.errors import HeaderParseError
from email.headerregistry import Address
from email.message import EmailMessage
from html import escape
from typing import Callable, Optional

from payrun.core.errors import NotificationError
from payrun.core.logging import get_logger

logger = get_logger(__name__)

CURRENCY_SYMBOL = "₦"


@dataclass(frozen=True)
class PayslipNotice:
    """Everything an employee's payslip email shows."""

    employee_name: str
    employee_email: str
    organization_name: str
    pay_period: str
    base_salary: Decimal
    total_additions: Decimal
    gross_salary: Decimal
    paye_tax: Decimal
    pension_deduction: Decimal
    nhf_deduction: Decimal
    nhis_deduction: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    reference: Optional[str] = None

    @classmethod
    def from_slip(cls, slip, employee, organization_name: str) -> PayslipNotice:
        return cls(
            employee_name=employee.full_name,
            employee_email=employee.email,
            organization_name=organization_name,
            pay_period=slip.pay_period,
            base_salary=slip.base_salary,
            total_additions=slip.total_additions,
            gross_salary=slip.gross_salary,
            paye_tax=slip.paye_tax,
            pension_deduction=slip.pension_deduction,
            nhf_deduction=slip.nhf_deduction,
            nhis_deduction=slip.nhis_deduction,
            other_deductions=slip.other_deductions,
            total_deductions=slip.total_deductions,
            net_salary=slip.net_salary,
            reference=slip.gateway_reference,
        )


def format_amount(amount) -> str:
    return f"{CURRENCY_SYMBOL}{Decimal(amount):,.2f}"


def _deduction_lines(notice: PayslipNotice) -> list[tuple[str, Decimal]]:
    return [
        ("PAYE Tax", notice.paye_tax),
        ("Pension", notice.pension_deduction),
        ("NHF", notice.nhf_deduction),
        ("NHIS", notice.nhis_deduction),
        ("Other Deductions", notice.other_deductions),
    ]


def render_payslip_text(notice: PayslipNotice) -> str:
    lines = [
        f"Dear {notice.employee_name},",
        "",
        f"Your salary for {notice.pay_period} has been processed by {notice.organization_name}.",
        "",
        "EARNINGS",
        f"{'Base Salary:':<21}{format_amount(notice.base_salary)}",
        f"{'Allowances/Bonuses:':<21}{format_amount(notice.total_additions)}",
        f"{'Gross Salary:':<21}{format_amount(notice.gross_salary)}",
        "",
        "DEDUCTIONS",
    ]
    lines += [f"{label + ':':<21}{format_amount(value)}" for label, value in _deduction_lines(notice)]
    lines += [
        f"{'Total Deductions:':<21}{format_amount(notice.total_deductions)}",
        "",
        f"{'NET PAY:':<21}{format_amount(notice.net_salary)}",
        "",
        f"Payment Reference: {notice.reference or 'N/A'}",
        "",
        f"This is an automated message from {notice.organization_name}'s payroll system.",
    ]
    return "\n".join(lines)


def render_payslip_html(notice: PayslipNotice) -> str:
    org = escape(notice.organization_name)
    deduction_rows = "".join(
        f"<tr><td>{escape(label)}</td><td>- {format_amount(value)}</td></tr>"
        for label, value in _deduction_lines(notice)
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; color: #333;">
  <h1>{org}</h1>
  <p>Payslip for {escape(notice.pay_period)}</p>
  <p>Dear <strong>{escape(notice.employee_name)}</strong>,</p>
  <p>Your salary for <strong>{escape(notice.pay_period)}</strong> has been processed.</p>
  <h2>Earnings</h2>
  <table>
    <tr><td>Base Salary</td><td>{format_amount(notice.base_salary)}</td></tr>
    <tr><td>Allowances &amp; Bonuses</td><td>{format_amount(notice.total_additions)}</td></tr>
    <tr><td><strong>Gross Salary</strong></td><td>{format_amount(notice.gross_salary)}</td></tr>
  </table>
  <h2>Deductions</h2>
  <table>
    {deduction_rows}
    <tr><td><strong>Total Deductions</strong></td><td>- {format_amount(notice.total_deductions)}</td></tr>
  </table>
  <h2>Net Pay</h2>
  <p><strong>{format_amount(notice.net_salary)}</strong> transferred to your account.</p>
  <p>Payment Reference: <code>{escape(notice.reference or "N/A")}</code></p>
  <p style="font-size: 12px; color: #6b7280;">This is an automated payslip from {org}'s payroll system. Please do not reply.</p>
</body>
</html>"""


class PayslipMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_name: str = "Payroll System",
        from_address: str = "payroll@example.com",
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_name = from_name
        self.from_address = from_address
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    @classmethod
    def from_settings(cls, settings) -> PayslipMailer:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_name=settings.email_from_name,
            from_address=settings.email_from_address,
        )

    def build_message(self, notice: PayslipNotice) -> EmailMessage:
        message = EmailMessage()
        try:
            message["From"] = Address(display_name=self.from_name, addr_spec=self.from_address)
            message["To"] = Address(display_name=notice.employee_name, addr_spec=notice.employee_email)
            message["Subject"] = f"Your Payslip for {notice.pay_period} - {notice.organization_name}"
            message.set_content(render_payslip_text(notice))
            message.add_alternative(render_payslip_html(notice), subtype="html")
        except (ValueError, IndexError, HeaderParseError) as exc:
            raise NotificationError(f"cannot build payslip email: {exc}") from exc
        return message

    def send_payslip(self, notice: PayslipNotice) -> None:
        message = self.build_message(notice)
        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("payslip_email_failed", recipient=notice.employee_email, error=str(exc))
            raise NotificationError(str(exc)) from exc

        logger.info("payslip_email_sent", recipient=notice.employee_email)
