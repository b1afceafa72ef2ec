"""
Budget engine: spend tracking, threshold alerts, financial health scoring,
monthly trends, insights, and budget templating over a pluggable ledger.
"""
