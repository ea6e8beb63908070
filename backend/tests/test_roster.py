"""Roster CSV import tests"""
import json
import pytest

from app.models.activity_log import ActivityLog
from app.models.student import Student
from app.models.user import User
from app.services.auth_service import hash_password
from app.services.roster_service import (
    DEFAULT_BELTS, parse_roster_csv, detect_column_mapping, match_belt, parse_int,
    parse_birthday, build_students, preview_roster
)
from factories import TEST_PASSWORD

ROSTER_CSV = (
    "Student Name,Parent Name,Parent Email,Phone,Belt,Date of Birth,Points,XP\n"
    "Ava Kim,Grace Kim,grace@example.com,555-0100,Yellow,03/15/2015,120,1500\n"
    ",,,,,,,\n"
    "Ben Lee,Tom Lee,tom@example.com,555-0101,black,2012-07-01,\"1,200 pts\",80\n"
    ",No Name,orphan@example.com,,White,,,\n"
)


@pytest.mark.high
class TestRosterParsing:
    """CSV parsing and field conversion"""

    def test_parse_drops_blank_rows_and_bom(self):
        headers, rows = parse_roster_csv("\ufeff" + ROSTER_CSV)

        assert headers[0] == "Student Name"
        assert len(rows) == 3

    def test_parse_requires_a_data_row(self):
        with pytest.raises(ValueError):
            parse_roster_csv("Student Name,Belt\n")

    def test_detect_column_mapping(self):
        headers, _ = parse_roster_csv(ROSTER_CSV)
        mapping = detect_column_mapping(headers)

        assert mapping["name"] == "Student Name"
        assert mapping["parent_name"] == "Parent Name"
        assert mapping["parent_email"] == "Parent Email"
        assert mapping["parent_phone"] == "Phone"
        assert mapping["belt"] == "Belt"
        assert mapping["birthday"] == "Date of Birth"
        assert mapping["points"] == "Points"
        assert mapping["xp"] == "XP"
        assert mapping["global_xp"] is None

    @pytest.mark.parametrize("value,expected", [
        ("Yellow", "wt-3"),
        ("black", "wt-11"),
        ("wt-7", "wt-7"),
        ("Blue/Red", "wt-8"),
        ("", "wt-1"),
        ("Purple", "wt-1"),
    ])
    def test_match_belt(self, value, expected):
        assert match_belt(value, DEFAULT_BELTS) == expected

    def test_match_belt_without_belts(self):
        assert match_belt("Yellow", []) == "white"

    def test_match_belt_skips_belts_without_id(self):
        belts = [{"name": "White"}, "Yellow", {"id": "y", "name": "Yellow"}, {"id": "", "name": "Green"}]
        assert match_belt("Yellow", belts) == "y"
        assert match_belt("Green", belts) == "y"
        assert match_belt("Yellow", [{"name": "Yellow"}]) == "white"

    def test_parse_int(self):
        assert parse_int("1,200 pts") == 1200
        assert parse_int("-5") == -5
        assert parse_int("none") == 0
        assert parse_int(None) == 0

    def test_parse_birthday(self):
        assert parse_birthday("03/15/2015") == "2015-03-15"
        assert parse_birthday("2012-07-01") == "2012-07-01"
        assert parse_birthday("March 5, 2014") == "2014-03-05"
        assert parse_birthday("someday") is None

    def test_build_students_skips_rows_without_name(self):
        headers, rows = parse_roster_csv(ROSTER_CSV)
        students = build_students(rows, headers, detect_column_mapping(headers), DEFAULT_BELTS)

        assert [s["name"] for s in students] == ["Ava Kim", "Ben Lee"]
        assert students[0]["belt"] == "wt-3"
        assert students[0]["birthday"] == "2015-03-15"
        assert students[1]["total_points"] == 1200
        assert students[1]["global_xp"] == 0

    def test_preview_uses_club_belts(self, db_session, test_club):
        test_club.wizard_data = {"belts": [{"id": "w", "name": "White"}, {"id": "y", "name": "Yellow"}]}
        db_session.commit()

        preview = preview_roster(test_club.id, ROSTER_CSV, db_session)

        assert [s["belt"] for s in preview["students"]] == ["y", "w"]
        assert preview["skipped"] == 1

    def test_preview_ignores_club_belts_without_ids(self, db_session, test_club):
        test_club.wizard_data = {"belts": [{"name": "White"}, {"name": "Yellow"}]}
        db_session.commit()

        preview = preview_roster(test_club.id, ROSTER_CSV, db_session)

        assert [s["belt"] for s in preview["students"]] == ["wt-3", "wt-11"]

    def test_preview_rejects_unknown_column(self, db_session, test_club):
        with pytest.raises(ValueError):
            preview_roster(test_club.id, ROSTER_CSV, db_session, mapping={"belt": "Rank"})


@pytest.mark.high
class TestRosterEndpoints:
    """Preview and import over HTTP"""

    def test_preview_saves_nothing(self, authenticated_client, db_session):
        response = authenticated_client.post("/api/roster/preview", data={"text": ROSTER_CSV})

        assert response.status_code == 200
        assert len(response.json()["students"]) == 2
        assert db_session.query(Student).count() == 0

    def test_import_creates_students_and_audits(self, authenticated_client, db_session, test_club, test_user):
        response = authenticated_client.post("/api/roster/import", data={"text": ROSTER_CSV})

        assert response.status_code == 200
        assert response.json()["imported"] == 2
        assert response.json()["skipped"] == 1
        students = db_session.query(Student).filter(Student.club_id == test_club.id).all()
        assert sorted(s.name for s in students) == ["Ava Kim", "Ben Lee"]

        entry = db_session.query(ActivityLog).filter(ActivityLog.event_type == "students_imported").one()
        assert entry.actor_email == test_user.email
        assert entry.event_metadata == {"imported": 2, "skipped": 1}

    def test_import_from_file_with_mapping_override(self, authenticated_client, db_session):
        response = authenticated_client.post(
            "/api/roster/import",
            files={"file": ("roster.csv", ROSTER_CSV.encode("utf-8-sig"), "text/csv")},
            data={"mapping": json.dumps({"xp": "Points"}), "import_global_xp": "false"},
        )

        assert response.status_code == 200
        ava = db_session.query(Student).filter(Student.name == "Ava Kim").one()
        assert ava.total_xp == 120

    def test_invalid_mapping_field(self, authenticated_client):
        response = authenticated_client.post(
            "/api/roster/import", data={"text": ROSTER_CSV, "mapping": json.dumps({"shoe_size": "Points"})}
        )
        assert response.status_code == 400

    def test_csv_without_rows(self, authenticated_client):
        response = authenticated_client.post("/api/roster/import", data={"text": "Student Name\n"})
        assert response.status_code == 400

    def test_oversized_csv_text_is_rejected(self, authenticated_client, db_session):
        text = "Student Name\n" + "x" * (2 * 1024 * 1024)
        response = authenticated_client.post("/api/roster/import", data={"text": text})

        assert response.status_code == 413
        assert db_session.query(Student).count() == 0

    def test_requires_login(self, client):
        assert client.post("/api/roster/import", data={"text": ROSTER_CSV}).status_code == 401

    def test_parent_accounts_cannot_import(self, client, db_session, test_club):
        parent = User(
            club_id=test_club.id, email="parent@example.com", role="parent",
            password_hash=hash_password(TEST_PASSWORD)
        )
        db_session.add(parent)
        db_session.commit()
        client.post("/api/auth/login", json={"email": parent.email, "password": TEST_PASSWORD})

        assert client.post("/api/roster/import", data={"text": ROSTER_CSV}).status_code == 403
