"""
pmtrade - prediction-market trade execution on Solana.

Quote -> sign -> submit -> confirm pipeline against the DFlow trade API,
plus position matching of wallet holdings against the market catalog.
"""

__version__ = "0.1.0"
