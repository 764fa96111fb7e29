"""
Storefront order subsystem: checkout, payment reconciliation and fulfilment.
"""
__version__ = "1.0.0"
