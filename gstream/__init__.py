"""gstream - stream G-code to Marlin printers over the numbered-line protocol"""

__version__ = "1.0.0"
