"""Natural-language personal metric tracker"""
__version__ = "0.1.0"
