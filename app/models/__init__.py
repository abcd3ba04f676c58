from app.models.core import Book

__all__ = ["Book"]
