"""
Lending Back Office

Loan origination and servicing for micro-lending operators: periodicity-driven
installment schedules, amortization math with Decimal precision, commission
split and per-creditor cash flow.
"""

__version__ = "1.0.0"
