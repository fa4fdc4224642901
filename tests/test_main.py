from datetime import date, timedelta


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def _setup(client, copies=1):
    r = client.post("/users/", json={"name": "Lee Librarian", "email": "lee@school.example"})
    assert r.status_code == 200
    librarian_id = r.json()["id"]
    r = client.post("/users/", json={"name": "Ava Admin", "email": "ava@school.example", "role": "admin"})
    admin_id = r.json()["id"]

    r = client.post("/students/", json={"student_number": "2026-0001", "first_name": "Ana", "last_name": "Reyes"})
    assert r.status_code == 200
    student_id = r.json()["id"]

    book = {"accession_number": "ACC-0001", "title": "Matilda", "author": "Roald Dahl", "copies_total": copies}
    r = client.post("/books/", json=book)
    assert r.status_code == 200
    assert r.json()["copies_available"] == copies
    return librarian_id, admin_id, student_id, r.json()["id"]


def test_borrow_return_and_settle_fine(client):
    librarian_id, admin_id, student_id, book_id = _setup(client)
    due = date.today() - timedelta(days=5)

    r = client.get(f"/students/{student_id}/eligibility")
    assert r.status_code == 200
    assert r.json()["eligible"] is True
    assert r.json()["remaining_capacity"] == 3

    # Borrow book with a due date already in the past is refused
    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id,
        "due_date": due.isoformat()})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"

    # Borrow book
    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})
    assert r.status_code == 200
    transaction_id = r.json()["id"]
    assert r.json()["status"] == "borrowed"
    assert client.get(f"/books/{book_id}").json()["copies_available"] == 0

    r = client.get(f"/students/{student_id}/summary")
    assert [t["id"] for t in r.json()["borrowed"]] == [transaction_id]
    assert r.json()["remaining_capacity"] == 2

    # Return book six days after the due date
    returned = (date.today() + timedelta(days=13)).isoformat()
    r = client.post(f"/transactions/{transaction_id}/return", json={"returned_date": returned, "condition": "fair"})
    assert r.status_code == 200
    assert r.json()["status"] == "returned"
    assert r.json()["fine_amount"] == "25.00"
    assert client.get(f"/books/{book_id}").json()["copies_available"] == 1

    r = client.post(f"/transactions/{transaction_id}/return", json={})
    assert r.status_code == 409
    assert r.json()["error"] == "already_returned"

    r = client.get(f"/transactions/{transaction_id}/fine")
    assert r.json()["days_overdue"] == 6
    assert r.json()["chargeable_days"] == 5

    r = client.post(f"/transactions/{transaction_id}/payments", json={"amount": "26.00", "method": "cash"})
    assert r.status_code == 400
    r = client.post(f"/transactions/{transaction_id}/payments", json={"amount": "10.00", "method": "cash"})
    assert r.status_code == 200
    assert r.json()["balance"] == "15.00"

    r = client.post(f"/transactions/{transaction_id}/waive", json={"reason": "", "admin_id": admin_id})
    assert r.status_code == 400
    r = client.post(f"/transactions/{transaction_id}/waive", json={"reason": "lost receipt", "admin_id": librarian_id})
    assert r.status_code == 403
    r = client.post(f"/transactions/{transaction_id}/waive", json={"reason": "lost receipt", "admin_id": admin_id})
    assert r.status_code == 200
    assert r.json()["fine_paid"] is True

    r = client.post(f"/transactions/{transaction_id}/mark-paid")
    assert r.status_code == 409
    assert r.json()["error"] == "fine_already_paid"


def test_second_borrower_gets_structured_error(client):
    librarian_id, _, student_id, book_id = _setup(client)
    r = client.post("/students/", json={"student_number": "2026-0002", "first_name": "Ben", "last_name": "Cruz"})
    other_id = r.json()["id"]
    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})
    assert r.status_code == 200
    r = client.post("/transactions/borrow", json={
        "student_id": other_id, "book_id": book_id, "librarian_id": librarian_id})
    assert r.status_code == 409
    assert r.json()["error"] == "book_unavailable"


def test_unknown_ids_are_not_found(client):
    r = client.post("/transactions/borrow", json={"student_id": 99, "book_id": 1, "librarian_id": 1})
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_settings_endpoint_changes_policy(client):
    librarian_id, _, student_id, book_id = _setup(client, copies=2)
    r = client.put("/settings/max_books_per_student", json={"value": "1"})
    assert r.status_code == 200
    assert client.get("/settings/").json()["max_books_per_student"] == "1"

    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})
    assert r.status_code == 200
    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})
    assert r.status_code == 409
    assert r.json()["error"] == "eligibility_denied"
    assert r.json()["detail"]["reason"] == "at_capacity"

    r = client.put("/settings/fine_per_day", json={"value": "lots"})
    assert r.status_code == 400


def test_calculate_fine_endpoint(client):
    r = client.get("/fines/calculate", params={"due_date": "2026-01-10", "reference_date": "2026-01-15"})
    assert r.status_code == 200
    assert r.json()["fine"] == "20.00"
    assert r.json()["chargeable_days"] == 4


def test_oversized_payment_is_a_validation_error(client):
    librarian_id, _, student_id, book_id = _setup(client)
    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})
    transaction_id = r.json()["id"]
    returned = (date.today() + timedelta(days=10)).isoformat()
    client.post(f"/transactions/{transaction_id}/return", json={"returned_date": returned})

    r = client.post(f"/transactions/{transaction_id}/payments", json={"amount": "1e100", "method": "cash"})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


def test_out_of_range_setting_keeps_borrowing_working(client):
    librarian_id, _, student_id, book_id = _setup(client)
    r = client.put("/settings/borrowing_period", json={"value": "4000000"})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"
    r = client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})
    assert r.status_code == 200
    assert r.json()["due_date"] == (date.today() + timedelta(days=7)).isoformat()


def test_list_books_filters_by_shelf_availability(client):
    librarian_id, _, student_id, book_id = _setup(client)
    r = client.post("/books/", json={"accession_number": "ACC-0002", "title": "Charlotte's Web",
                                     "author": "E. B. White", "copies_total": 2})
    other_id = r.json()["id"]
    client.post("/transactions/borrow", json={
        "student_id": student_id, "book_id": book_id, "librarian_id": librarian_id})

    r = client.get("/books/", params={"on_shelf": "true"})
    assert [b["id"] for b in r.json()] == [other_id]
    r = client.get("/books/", params={"on_shelf": "false"})
    assert [b["id"] for b in r.json()] == [book_id]
    r = client.get("/books/", params={"status": "available"})
    assert len(r.json()) == 2
    r = client.get("/books/", params={"q": "ACC-0002"})
    assert [b["id"] for b in r.json()] == [other_id]
    r = client.get("/books/", params={"status": "lost"})
    assert r.status_code == 400
