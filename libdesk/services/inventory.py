import logging
from dataclasses import dataclass
from typing import List

from libdesk.core.errors import AtMaximumCapacity, NoCopiesAvailable
from libdesk.models.models import Book
from libdesk.services.repository import CirculationRepository

logger = logging.getLogger("libdesk.inventory")


@dataclass
class InventoryMismatch:
    book_id: int
    accession_number: str
    copies_total: int
    copies_available: int
    active_transactions: int

    @property
    def expected_available(self) -> int:
        return self.copies_total - self.active_transactions


class InventoryLedger:
    """Guards ``copies_available`` within ``[0, copies_total]``.

    Both moves are a single conditional UPDATE, so two requests racing for
    the last copy cannot both succeed. Neither commits; the caller's unit of
    work does.
    """

    def __init__(self, repo: CirculationRepository):
        self.repo = repo

    def decrement_copy(self, book: Book) -> None:
        if not self.repo.decrement_available(book.id):
            logger.warning(f"No copies available for book {book.id}")
            raise NoCopiesAvailable("All copies of this book are currently borrowed", book_id=book.id)
        self.repo.refresh_book_counters(book)

    def increment_copy(self, book: Book) -> None:
        if not self.repo.increment_available(book.id):
            logger.error(f"Book {book.id} already has all copies on the shelf; inventory is inconsistent")
            raise AtMaximumCapacity("Book already has every copy available", book_id=book.id)
        self.repo.refresh_book_counters(book)

    def audit(self) -> List[InventoryMismatch]:
        """Books whose borrowed-copy count disagrees with their active transactions."""
        mismatches = []
        for book, active in self.repo.active_counts_by_book():
            if book.copies_total - book.copies_available != active:
                mismatches.append(InventoryMismatch(
                    book_id=book.id,
                    accession_number=book.accession_number,
                    copies_total=book.copies_total,
                    copies_available=book.copies_available,
                    active_transactions=active,
                ))
        for m in mismatches:
            logger.error(f"Inventory mismatch for book {m.book_id}: available={m.copies_available} "
                         f"expected={m.expected_available}")
        return mismatches
