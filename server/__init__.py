"""
API Backend Module
Contains the FastAPI backend components for FocusBand.
"""

__version__ = "1.0.0"
__author__ = "FocusBand Team"
