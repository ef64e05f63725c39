# madmatch/__init__.py
__version__ = "1.4.0"
