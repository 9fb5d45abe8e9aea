"""DLVR - Certified delivery with cryptographic proof of receipt.

Tracks documents from dispatch to confirmation, issues self-contained signed
receipts anchored to the drand randomness beacon, and records legal service
of process with affidavit scoring.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
