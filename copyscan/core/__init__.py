"""
Core infrastructure modules for errors, logging, and utilities.
"""

from .errors import *
from .utils import *
