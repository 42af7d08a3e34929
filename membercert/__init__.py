"""
Membership certificate generation with tamper-evident verification data.
"""
__version__ = "1.0.0"
