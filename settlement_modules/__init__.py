"""
Settlement modules.

Business modules built on ``settlement_kernel``:

- ``tax``          statutory bracket tables and the pure tax resolver
- ``payroll``      payroll periods, entries, calculator, results and payslips
- ``commissions``  sale and service-order commissions and their settlement
- ``performance``  sales goals and the vendor performance rollup
- ``sales``        the sales/service-order ledger that feeds commissions
"""
