"""
ChromeSec - Browser-driven web vulnerability scanner.
"""

__version__ = "0.1.0"
