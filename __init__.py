"""
License Client for remotely published entitlement tables

Decides whether a serial key is currently authorized by reading the
entitlement table an operator publishes on a QR-code "active page" service,
either through its batch API or by scraping the public page. Results are
cached in memory per configured source and every failure denies access.
"""

__version__ = "1.0.0"
