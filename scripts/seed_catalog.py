import argparse
import json
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database import SessionLocal, engine
from app.models.base import Base
from app.models.core import Book
from app.services.utils import normalize_isbn
from app.services.validation import ValidationError, require, validate_min_rating, validate_physical_location

BOOK_FIELDS = (
    "title",
    "author",
    "genre",
    "isbn",
    "publisher",
    "publication_year",
    "description",
    "page_count",
    "cover_image_url",
    "personal_rating",
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the catalog schema and load books from a JSON file")
    parser.add_argument("path", type=Path, help="JSON file holding a list of book objects")
    parser.add_argument("--skip-existing", action="store_true", help="Skip books whose ISBN is already cataloged")
    return parser.parse_args()


def build_book(record: dict[str, Any]) -> Book:
    require(bool(str(record.get("title") or "").strip()), "Every book needs a title")
    require(bool(str(record.get("author") or "").strip()), f"Book {record.get('title')!r} needs an author")
    values = {name: record.get(name) for name in BOOK_FIELDS}
    if values["personal_rating"] is not None:
        validate_min_rating(int(values["personal_rating"]))
    location = record.get("physical_location")
    return Book(**values, physical_location=validate_physical_location(location) if location else None)


def load_books(db: Session, records: list[dict[str, Any]], *, skip_existing: bool = False) -> int:
    known: set[str] = set()
    if skip_existing:
        known = {normalize_isbn(isbn) for isbn in db.scalars(select(Book.isbn).where(Book.isbn.is_not(None)))}
    added = 0
    for record in records:
        book = build_book(record)
        if skip_existing and book.isbn and normalize_isbn(book.isbn) in known:
            continue
        db.add(book)
        if book.isbn:
            known.add(normalize_isbn(book.isbn))
        added += 1
    return added


def main() -> int:
    args = parse_args()
    records = json.loads(args.path.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        raise SystemExit(f"Expected a JSON list of books in {args.path}")

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        try:
            added = load_books(db, records, skip_existing=args.skip_existing)
        except ValidationError as exc:
            db.rollback()
            raise SystemExit(f"Invalid book record: {exc}") from exc
        db.commit()
    print(f"loaded {added} books from {args.path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
