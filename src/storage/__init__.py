"""Data storage and persistence layer"""

from .models import PRICEABLE_POST_TYPES, Option, Post, PostMeta, Transient
from .database import Database

__all__ = [
    "PRICEABLE_POST_TYPES",
    "Post",
    "PostMeta",
    "Option",
    "Transient",
    "Database",
]
