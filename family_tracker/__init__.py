"""
Family Expense Tracker - Source Package

A shared household ledger: family members record income and expenses,
categorize them, and review dashboards. Access is granted by an
administrator, optionally for a limited time.

DESIGN PRINCIPLES:
1. The remote document store is the source of truth
2. Access fails closed
3. Restores only ever add data
4. Every significant action is auditable
5. Storage and identity backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Family Expense Tracker Team"
