def test_fetch_book_details_normalizes_code(library_manager):
    result = library_manager.fetch_book_details('  cs101-a ')
    assert result['success'] is True
    book = result['book']
    assert book['code'] == 'CS101-A'
    assert book['title'] == 'Introduction to Algorithms'
    assert book['author'] == 'Thomas H. Cormen'
    assert book['cover_url']


def test_fetch_book_details_errors(library_manager):
    assert library_manager.fetch_book_details('')['error_type'] == 'validation_error'
    missing = library_manager.fetch_book_details('NOPE-1')
    assert missing['error_type'] == 'not_found'
    assert missing['error'] == 'No book found with code NOPE-1.'


def test_issue_book(library_manager):
    result = library_manager.issue_book(3, 'math201-b')
    assert result['success'] is True
    assert result['message'] == '"Calculus: Early Transcendentals" has been issued to your account.'
    assert result['loan']['book_code'] == 'MATH201-B'
    assert result['loan']['returned_at'] is None

    issued = library_manager.get_issued_books(3)
    assert [b['book_code'] for b in issued] == ['MATH201-B']
    assert library_manager.get_issued_books(4) == []


def test_issue_book_twice_is_rejected(library_manager):
    library_manager.issue_book(3, 'CS101-A')
    result = library_manager.issue_book(3, 'CS101-A')
    assert result['error_type'] == 'already_issued'

    # another user can still borrow it
    assert library_manager.issue_book(4, 'CS101-A')['success'] is True


def test_issue_book_unknown_user_or_book(library_manager):
    assert library_manager.issue_book(999, 'CS101-A')['error_type'] == 'user_not_found'
    assert library_manager.issue_book(3, 'NOPE-1')['error_type'] == 'not_found'


def test_return_book_allows_reissue(library_manager):
    library_manager.issue_book(3, 'PHY110-C')

    result = library_manager.return_book(3, 'phy110-c')
    assert result['success'] is True
    assert library_manager.get_issued_books(3) == []
    assert len(library_manager.get_issued_books(3, include_returned=True)) == 1

    assert library_manager.return_book(3, 'PHY110-C')['error_type'] == 'not_found'
    assert library_manager.issue_book(3, 'PHY110-C')['success'] is True


def test_add_book(library_manager):
    result = library_manager.add_book({'code': 'bio100-a', 'title': 'Biology', 'author': 'Campbell'})
    assert result['success'] is True
    assert result['book']['code'] == 'BIO100-A'
    assert result['book']['description'] == ''

    assert library_manager.add_book({'code': 'BIO100-A', 'title': 'x', 'author': 'y'})['error_type'] == 'duplicate'
    assert library_manager.add_book({'code': 'X', 'title': '', 'author': 'y'})['error_type'] == 'validation_error'
    assert [b['code'] for b in library_manager.get_all_books()] == \
        ['BIO100-A', 'CS101-A', 'MATH201-B', 'PHY110-C']
