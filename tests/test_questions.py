"""
Tests for the question bank: validation rules and endpoints.
"""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient

from nursecred.core.config import settings
from nursecred.core.exceptions import ValidationError
from nursecred.services.question_service import validate_question

API = settings.API_PREFIX

MULTIPLE_CHOICE = {
    "text": "What is the normal adult resting heart rate?",
    "type": "multiple-choice",
    "options": ["40-60", "60-100", "100-140"],
    "correct_answer": "60-100",
    "category": "Fundamental Nursing",
    "difficulty": "Easy",
}


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def errors_of(data: dict) -> set:
    with pytest.raises(ValidationError) as exc_info:
        validate_question(data)
    return {error["field"] for error in exc_info.value.errors}


def test_valid_multiple_choice_gets_defaults() -> None:
    cleaned = validate_question({**MULTIPLE_CHOICE, "category": None, "difficulty": None})
    assert cleaned["category"].value == "Other"
    assert cleaned["difficulty"].value == "Medium"


def test_text_length() -> None:
    assert errors_of({**MULTIPLE_CHOICE, "text": "Too short"}) == {"text"}
    assert errors_of({**MULTIPLE_CHOICE, "text": "x" * 1001}) == {"text"}


def test_choice_options_bounds() -> None:
    assert "options" in errors_of({**MULTIPLE_CHOICE, "options": ["60-100"]})
    assert "options" in errors_of({**MULTIPLE_CHOICE, "options": [str(i) for i in range(7)]})
    assert "options" in errors_of({**MULTIPLE_CHOICE, "options": ["60-100", "  "]})


def test_correct_answer_must_be_an_option() -> None:
    assert errors_of({**MULTIPLE_CHOICE, "correct_answer": "200"}) == {"correct_answer"}


def test_checkbox_answers() -> None:
    checkbox = {**MULTIPLE_CHOICE, "type": "checkbox", "correct_answer": ["40-60", "60-100"]}
    assert validate_question(checkbox)["correct_answer"] == ["40-60", "60-100"]
    assert errors_of({**checkbox, "correct_answer": []}) == {"correct_answer"}
    assert errors_of({**checkbox, "correct_answer": ["999"]}) == {"correct_answer"}
    assert errors_of({**checkbox, "correct_answer": "60-100"}) == {"correct_answer"}


def test_short_answer_needs_no_options() -> None:
    cleaned = validate_question(
        {"text": "Describe the steps of hand hygiene.", "type": "short-answer", "correct_answer": None}
    )
    assert cleaned["options"] == []


def test_every_violation_is_reported() -> None:
    fields = errors_of(
        {
            "text": "short",
            "type": "essay",
            "category": "Astrology",
            "difficulty": "Impossible",
            "explanation": "x" * 2001,
            "image": "not a url",
            "tags": ["a", "b", "c", "d", "e", "f"],
        }
    )
    assert fields == {"text", "type", "category", "difficulty", "explanation", "image", "tags"}


def test_tags_are_cleaned_before_counting() -> None:
    cleaned = validate_question({**MULTIPLE_CHOICE, "tags": [" Cardio ", "cardio", "VITALS", "a", "b", "c"]})
    assert cleaned["tags"] == ["cardio", "vitals", "a", "b", "c"]


def test_image_url_schemes() -> None:
    assert validate_question({**MULTIPLE_CHOICE, "image": "ftp://files.example.com/a.png"})["image"]
    assert errors_of({**MULTIPLE_CHOICE, "image": "javascript:alert(1)"}) == {"image"}


def test_create_question(client: TestClient, head_token: str) -> None:
    response = client.post(f"{API}/questions", json=MULTIPLE_CHOICE, headers=auth(head_token))
    assert response.status_code == 201
    data = response.json()
    assert data["text"] == MULTIPLE_CHOICE["text"]
    assert data["correct_answer"] == "60-100"


def test_create_with_indonesian_field_names(client: TestClient, admin_token: str) -> None:
    response = client.post(
        f"{API}/questions",
        json={
            "pertanyaan": "Berapa frekuensi napas normal orang dewasa?",
            "type": "multiple-choice",
            "pilihan": ["8-10", "12-20", "24-30"],
            "jawabanBenar": "12-20",
            "kategori": "Critical Care",
            "tingkatKesulitan": "Hard",
            "penjelasan": "Normal respiratory rate is 12-20 per minute.",
        },
        headers=auth(admin_token),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["category"] == "Critical Care"
    assert data["difficulty"] == "Hard"
    assert data["explanation"].startswith("Normal respiratory rate")


def test_create_invalid_question(client: TestClient, admin_token: str) -> None:
    response = client.post(
        f"{API}/questions",
        json={**MULTIPLE_CHOICE, "correct_answer": "nope", "text": "short"},
        headers=auth(admin_token),
    )
    assert response.status_code == 400
    assert {e["field"] for e in response.json()["errors"]} == {"text", "correct_answer"}


def test_nurse_cannot_write(client: TestClient, nurse_token: str) -> None:
    response = client.post(f"{API}/questions", json=MULTIPLE_CHOICE, headers=auth(nurse_token))
    assert response.status_code == 403


def test_list_get_update_delete(client: TestClient, admin_token: str, nurse_token: str) -> None:
    created = client.post(f"{API}/questions", json=MULTIPLE_CHOICE, headers=auth(admin_token)).json()
    client.post(
        f"{API}/questions",
        json={"text": "Describe the steps of hand hygiene.", "type": "short-answer", "category": "Emergency"},
        headers=auth(admin_token),
    )

    listing = client.get(f"{API}/questions", params={"type": "multiple-choice"}, headers=auth(nurse_token)).json()
    assert listing["total_count"] == 1

    by_category = client.get(f"{API}/questions/category/Emergency", headers=auth(nurse_token)).json()
    assert len(by_category) == 1

    assert client.get(f"{API}/questions/{created['id']}", headers=auth(nurse_token)).status_code == 200

    updated = client.put(
        f"{API}/questions/{created['id']}",
        json={"difficulty": "Hard", "tags": ["Cardio"]},
        headers=auth(admin_token),
    )
    assert updated.status_code == 200
    assert updated.json()["difficulty"] == "Hard"
    assert updated.json()["tags"] == ["cardio"]
    assert updated.json()["correct_answer"] == "60-100"

    # Changing the options must keep the stored answer consistent
    broken = client.put(
        f"{API}/questions/{created['id']}",
        json={"options": ["1", "2"]},
        headers=auth(admin_token),
    )
    assert broken.status_code == 400

    assert client.delete(f"{API}/questions/{created['id']}", headers=auth(admin_token)).status_code == 200
    assert client.get(f"{API}/questions/{created['id']}", headers=auth(nurse_token)).status_code == 404


def test_list_rejects_unknown_filter_value(client: TestClient, nurse_token: str) -> None:
    response = client.get(f"{API}/questions", params={"difficulty": "Trivial"}, headers=auth(nurse_token))
    assert response.status_code == 400


def test_upload_image(client: TestClient, admin_token: str) -> None:
    png = b"\x89PNG\r\n\x1a\n" + b"0" * 64
    response = client.post(
        f"{API}/questions/upload-image",
        files={"image": ("chart.png", BytesIO(png), "image/png")},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["filename"].endswith("chart.png")
    assert data["image_url"].startswith("http://testserver/")

    image = client.get(data["image_url"])
    assert image.status_code == 200
    assert image.content == png

    question = client.post(
        f"{API}/questions",
        json={**MULTIPLE_CHOICE, "image": data["image_url"]},
        headers=auth(admin_token),
    )
    assert question.status_code == 201


def test_upload_image_rejects_non_images(client: TestClient, admin_token: str) -> None:
    response = client.post(
        f"{API}/questions/upload-image",
        files={"image": ("notes.pdf", BytesIO(b"%PDF"), "application/pdf")},
        headers=auth(admin_token),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Only image files are allowed"
