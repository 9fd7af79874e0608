"""
Pydantic models for content descriptors, similarity results and scan output.
"""

from .content import *
from .similarity import *
