"""
Library Manager Module - EduSched School Management System

This module implements the library checkout feature: looking up a book by
its code, issuing it to a user, listing a user's issued books and
returning them. A user holds at most one open loan per book.
"""

import logging
import sqlite3
from typing import Dict, List, Any, Optional

DEFAULT_COVER_URL = 'https://placehold.co/80x120.png'


class LibraryManager:
    """
    Book catalogue lookups and loans.
    """

    def __init__(self, database_manager):
        """
        Args:
            database_manager: Database manager instance
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def normalize_code(code: str) -> str:
        return str(code or '').strip().upper()

    def fetch_book_details(self, code: str) -> Dict[str, Any]:
        """
        Look up a book by its code.

        Args:
            code (str): Book code, e.g. CS101-A

        Returns:
            Dict[str, Any]: {'success': True, 'book': {...}} or an error result
        """
        code = self.normalize_code(code)
        if not code:
            return {'success': False, 'error': 'A book code is required.', 'error_type': 'validation_error'}

        book = self._get_book(code)
        if not book:
            return {
                'success': False,
                'error': f'No book found with code {code}.',
                'error_type': 'not_found'
            }

        return {
            'success': True,
            'book': {
                'code': book['code'],
                'title': book['title'],
                'author': book['author'],
                'description': book['description'] or '',
                'cover_url': book['cover_url'] or DEFAULT_COVER_URL
            }
        }

    def issue_book(self, user_id: int, code: str) -> Dict[str, Any]:
        """
        Issue a book to a user.

        Args:
            user_id (int): Borrowing user's ID
            code (str): Book code

        Returns:
            Dict[str, Any]: Issue result with the loan record
        """
        code = self.normalize_code(code)

        user = self.db.execute_query(
            "SELECT id, user_code FROM users WHERE id = ? AND is_active = 1",
            (user_id,),
            fetch_all=False
        )
        if not user:
            return {'success': False, 'error': 'User not found.', 'error_type': 'user_not_found'}

        book = self._get_book(code)
        if not book:
            return {
                'success': False,
                'error': f'No book found with code {code}.',
                'error_type': 'not_found'
            }

        if self._get_open_loan(user_id, code):
            return self._already_issued(book)

        try:
            loan_id = self.db.execute_update(
                """INSERT INTO issued_books (user_id, book_code, book_title, book_author, book_cover_url)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, book['code'], book['title'], book['author'], book['cover_url'])
            )
        except sqlite3.IntegrityError:
            return self._already_issued(book)

        self.logger.info(f"Book {code} issued to {user['user_code']}")
        return {
            'success': True,
            'message': f'"{book["title"]}" has been issued to your account.',
            'loan': self.db.execute_query(
                "SELECT * FROM issued_books WHERE id = ?", (loan_id,), fetch_all=False
            )
        }

    def get_issued_books(self, user_id: int, include_returned: bool = False) -> List[Dict[str, Any]]:
        """
        Get a user's loans, newest first.
        """
        query = "SELECT * FROM issued_books WHERE user_id = ?"
        if not include_returned:
            query += " AND returned_at IS NULL"
        query += " ORDER BY issued_at DESC, id DESC"
        return self.db.execute_query(query, (user_id,))

    def return_book(self, user_id: int, code: str) -> Dict[str, Any]:
        code = self.normalize_code(code)
        affected = self.db.execute_update(
            """UPDATE issued_books SET returned_at = CURRENT_TIMESTAMP
               WHERE user_id = ? AND book_code = ? AND returned_at IS NULL""",
            (user_id, code)
        )
        if not affected:
            return {
                'success': False,
                'error': f'No open loan for book {code}.',
                'error_type': 'not_found'
            }

        self.logger.info(f"Book {code} returned by user {user_id}")
        return {'success': True, 'message': f'Book {code} returned.'}

    def add_book(self, book_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add a book to the catalogue.

        Args:
            book_data (Dict[str, Any]): code, title, author, description, cover_url

        Returns:
            Dict[str, Any]: Creation result
        """
        code = self.normalize_code(book_data.get('code'))
        title = str(book_data.get('title') or '').strip()
        author = str(book_data.get('author') or '').strip()

        for field, value in (('code', code), ('title', title), ('author', author)):
            if not value:
                return {
                    'success': False,
                    'error': f'Missing required field: {field}',
                    'error_type': 'validation_error'
                }

        try:
            self.db.execute_update(
                """INSERT INTO books (code, title, author, description, cover_url)
                   VALUES (?, ?, ?, ?, ?)""",
                (code, title, author,
                 str(book_data.get('description') or '').strip() or None,
                 str(book_data.get('cover_url') or '').strip() or None)
            )
        except sqlite3.IntegrityError:
            return {
                'success': False,
                'error': f'A book with code {code} already exists.',
                'error_type': 'duplicate'
            }

        self.logger.info(f"Book added to catalogue: {code}")
        return self.fetch_book_details(code)

    def get_all_books(self) -> List[Dict[str, Any]]:
        return self.db.execute_query(
            "SELECT * FROM books WHERE is_active = 1 ORDER BY code"
        )

    def _get_book(self, code: str) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            "SELECT * FROM books WHERE code = ? AND is_active = 1", (code,), fetch_all=False
        )

    def _get_open_loan(self, user_id: int, code: str) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            """SELECT * FROM issued_books
               WHERE user_id = ? AND book_code = ? AND returned_at IS NULL""",
            (user_id, code),
            fetch_all=False
        )

    def _already_issued(self, book: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'success': False,
            'error': f'"{book["title"]}" is already issued to your account.',
            'error_type': 'already_issued'
        }
