"""Exports & reporting: CSV writers and Markdown reports for a calculation.

- writers.py: per-year CSV emitters (volumes, prices, pnl, cashflow, returns)
- reports.py: assumptions.md and validation_report.md generators
"""
