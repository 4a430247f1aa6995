"""Cross-source NBA player resolution, forecasting and prop-line matching."""

__version__ = "1.0.0"
