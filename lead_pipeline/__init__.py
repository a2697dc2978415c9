"""
Lead pipeline core.

Lifecycle, exclusive assignment, duplicate alerts and batch reconciliation for
patient leads moving from intake through review and kit fulfillment.
"""

__version__ = "0.1.0"
