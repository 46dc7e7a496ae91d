"""
Shipping rate calculation: package splitting, memoized carrier quotes and
service price / delivery date extraction.
"""
__version__ = "1.0.0"
