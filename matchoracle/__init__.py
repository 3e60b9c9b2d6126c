"""Football match-outcome prediction pipeline (Oracle / Tesseract engine)."""

__version__ = "0.4.0"
