"""
DairyOps: HTTP backend for dairy operations.

Client records, milking events, orders, payments and a signed
payment-provider webhook on top of an external Supabase deployment.
"""

__version__ = "1.0.0"
