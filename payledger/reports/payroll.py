from pathlib import Path
from typing import Callable, Dict, List
import pandas as pd

from payledger.core.repositories import UnitOfWork
from payledger.core.utils import mkdir_safe

REGISTER_COLUMNS = [
    ("employee_name", "Employee"),
    ("basic_salary", "Basic"),
    ("housing_allowance", "Housing"),
    ("transport_allowance", "Transport"),
    ("other_allowances", "Other Allowances"),
    ("additions", "Additions"),
    ("gross_salary", "Gross"),
    ("paye", "PAYE"),
    ("napsa_employee", "NAPSA (EE)"),
    ("napsa_employer", "NAPSA (ER)"),
    ("nhima_employee", "NHIMA (EE)"),
    ("nhima_employer", "NHIMA (ER)"),
    ("pension_employee", "Pension (EE)"),
    ("pension_employer", "Pension (ER)"),
    ("wht", "WHT"),
    ("advances_deducted", "Advances"),
    ("total_deductions", "Total Deductions"),
    ("net_salary", "Net"),
]

class PayrollReports:
    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self.uow_factory = uow_factory

    def register(self, run_id: str) -> pd.DataFrame:
        """Payroll register for one run: a row per employee and a TOTAL row."""
        with self.uow_factory() as uow:
            run = uow.runs.get(run_id)
        headers = [h for _, h in REGISTER_COLUMNS]
        if not run.items:
            return pd.DataFrame(columns=headers)
        rows = [
            {header: getattr(item, name) if name == "employee_name" else float(getattr(item, name))
             for name, header in REGISTER_COLUMNS}
            for item in run.items
        ]
        df = pd.DataFrame(rows, columns=headers)
        totals = df[headers[1:]].sum().round(2).to_dict()
        totals["Employee"] = "TOTAL"
        return pd.concat([df, pd.DataFrame([totals], columns=headers)], ignore_index=True)

    def export_register(self, run_id: str, path: str) -> Path:
        df = self.register(run_id)
        out = Path(path)
        mkdir_safe(str(out.parent))
        df.to_excel(out, index=False, sheet_name="Payroll Register")
        return out

    def trial_balance(self, company_id: str) -> pd.DataFrame:
        with self.uow_factory() as uow:
            entries = uow.journals.list_posted(company_id)
            tb: Dict[str, Dict[str, float]] = {}
            for entry in entries:
                for line in entry.lines:
                    tb.setdefault(line.account_code, {"debit": 0.0, "credit": 0.0})
                    tb[line.account_code]["debit"] += float(line.debit)
                    tb[line.account_code]["credit"] += float(line.credit)
            rows: List[dict] = []
            for code in sorted(tb):
                account = uow.accounts.get_by_code(company_id, code)
                rows.append({
                    "Account": f"{code} {account.name if account else 'Unknown'}",
                    "Debit": round(tb[code]["debit"], 2),
                    "Credit": round(tb[code]["credit"], 2),
                })
        if not rows:
            return pd.DataFrame(columns=["Account", "Debit", "Credit"])
        return pd.DataFrame(rows)
