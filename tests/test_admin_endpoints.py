from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import datetime, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from timeclock.db import get_db
from timeclock.main import app
from timeclock.models import (
    AuditLog,
    Company,
    Employee,
    EmployeeStatus,
    EntryStatus,
    EntryType,
    Kiosk,
    TimeEntry,
)
from timeclock.security import create_identity_token, require_admin, verify_kiosk_token

ADMIN_CLAIMS = {"sub": "admin-1", "name": "Carla Admin", "email": "carla@example.com", "admin": True}
SCHEDULE = {
    "monday": {"isWorkDay": True, "entry": "08:00", "breakStart": "12:00", "breakEnd": "13:00", "exit": "17:00"},
}


class _Scalars:
    def __init__(self, items: list[object]):
        self._items = items

    def all(self) -> list[object]:
        return list(self._items)


class _FakeDB:
    def __init__(self, objects: list[object] | None = None, scalars_results: list[list[object]] | None = None):
        self._objects: dict[tuple[type, object], object] = {}
        for obj in objects or []:
            self._objects[(type(obj), obj.id)] = obj
        self._scalars_results = list(scalars_results or [])
        self.added: list[object] = []
        self.deleted: list[object] = []
        self._next_id = 500

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        return self._objects.get((model, pk))

    def scalars(self, _statement):  # type: ignore[no-untyped-def]
        if not self._scalars_results:
            return _Scalars([])
        return _Scalars(self._scalars_results.pop(0))

    def add(self, obj) -> None:  # type: ignore[no-untyped-def]
        self.added.append(obj)

    def delete(self, obj) -> None:  # type: ignore[no-untyped-def]
        self.deleted.append(obj)

    def flush(self) -> None:
        return None

    def commit(self) -> None:
        return None

    def rollback(self) -> None:
        return None

    def refresh(self, obj) -> None:  # type: ignore[no-untyped-def]
        if getattr(obj, "id", None) is None:
            self._next_id += 1
            obj.id = self._next_id

    def audit_actions(self) -> list[str]:
        return [item.action for item in self.added if isinstance(item, AuditLog)]


def _override_get_db(fake_db: _FakeDB):
    def _override() -> Generator[_FakeDB, None, None]:
        yield fake_db

    return _override


def _admin_employee(company_id: int | None = 1) -> Employee:
    return Employee(
        id="admin-1",
        display_name="Carla Admin",
        company_id=company_id,
        status=EmployeeStatus.ACTIVE,
        allowed_locations=[],
    )


def _employee(company_id: int = 1) -> Employee:
    return Employee(
        id="emp-1",
        display_name="Ana Souza",
        company_id=company_id,
        status=EmployeeStatus.ACTIVE,
        allowed_locations=["Head Office"],
        work_hours=SCHEDULE,
    )


def _entry(employee: Employee, **overrides) -> TimeEntry:  # type: ignore[no-untyped-def]
    values = {
        "id": 40,
        "employee_id": employee.id,
        "display_name": employee.display_name,
        "type": EntryType.CLOCK_IN,
        "ts_utc": datetime(2024, 3, 4, 13, 30, tzinfo=timezone.utc),
        "status": EntryStatus.PENDING_APPROVAL,
        "justification": "Bus strike",
        "is_edited": False,
        "is_offline": False,
        "is_kiosk": False,
    }
    values.update(overrides)
    entry = TimeEntry(**values)
    entry.employee = employee
    return entry


class AdminAccessTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_non_admin_token_is_forbidden(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB())
        client = TestClient(app)
        token = create_identity_token(sub="emp-1", name="Ana Souza")

        response = client.get("/api/admin/employees", headers={"Authorization": f"Bearer {token}"})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

    def test_admin_token_passes_the_gate(self) -> None:
        fake_db = _FakeDB([_admin_employee()], scalars_results=[[_admin_employee(), _employee()]])
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)
        token = create_identity_token(sub="admin-1", name="Carla Admin", admin=True)

        response = client.get("/api/admin/employees", headers={"Authorization": f"Bearer {token}"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["id"] for item in response.json()], ["admin-1", "emp-1"])

    def test_admin_without_company_cannot_list_employees(self) -> None:
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB())
        client = TestClient(app)

        response = client.get("/api/admin/employees")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "ADMIN_WITHOUT_COMPANY")


class AdminCompanyTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_upsert_creates_company_and_geocodes_missing_coordinates(self) -> None:
        fake_db = _FakeDB()
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        with patch(
            "timeclock.services.admin_ops.geocode_address",
            return_value=(-3.7436, -38.5369),
        ) as geocode_mock:
            response = client.put(
                "/api/admin/company",
                json={
                    "name": "Padaria Central",
                    "tax_id": "12345678000199",
                    "locations": [
                        {
                            "name": "Head Office",
                            "full_address": "Av. Beira Mar 100, Fortaleza",
                            "location": {"lat": -3.7319, "lon": -38.5267},
                            "is_main": True,
                        },
                        {"name": "Warehouse", "full_address": "Rua Barao do Rio Branco 50, Fortaleza"},
                    ],
                },
            )

        self.assertEqual(response.status_code, 200)
        geocode_mock.assert_called_once_with("Rua Barao do Rio Branco 50, Fortaleza")
        body = response.json()
        self.assertEqual(body["name"], "Padaria Central")
        self.assertEqual([item["name"] for item in body["locations"]], ["Head Office", "Warehouse"])
        self.assertEqual(body["locations"][0]["lat"], -3.7319)
        self.assertEqual(body["locations"][1]["lat"], -3.7436)

        admins = [item for item in fake_db.added if isinstance(item, Employee)]
        self.assertEqual(len(admins), 1)
        self.assertEqual(admins[0].id, "admin-1")
        self.assertIsInstance(admins[0].company, Company)
        self.assertIn("COMPANY_UPSERTED", fake_db.audit_actions())

    def test_company_lookup_without_profile_is_not_found(self) -> None:
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee(company_id=None)]))
        client = TestClient(app)

        response = client.get("/api/admin/company")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "COMPANY_NOT_FOUND")


class AdminEmployeeTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_admin_cannot_delete_own_account(self) -> None:
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee()]))
        client = TestClient(app)

        response = client.delete("/api/admin/employees/admin-1")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "CANNOT_DELETE_SELF")

    def test_employee_from_other_company_is_not_found(self) -> None:
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee(), _employee(company_id=2)]))
        client = TestClient(app)

        response = client.get("/api/admin/employees/emp-1")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "EMPLOYEE_NOT_FOUND")

    def test_create_employee_defaults_schedule_and_company(self) -> None:
        fake_db = _FakeDB([_admin_employee()])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post(
            "/api/admin/employees",
            json={"id": "emp-9", "display_name": "  Bruno Lima ", "allowed_locations": ["Head Office", "kiosk"]},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["display_name"], "Bruno Lima")
        self.assertEqual(body["company_id"], 1)
        self.assertEqual(body["work_hours"]["weekday"]["entry"], "08:00")
        self.assertIn("EMPLOYEE_CREATED", fake_db.audit_actions())

    def test_create_employee_rejects_unknown_schedule_key(self) -> None:
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee()]))
        client = TestClient(app)

        response = client.post(
            "/api/admin/employees",
            json={"id": "emp-9", "display_name": "Bruno Lima", "work_hours": {"funday": {"entry": "08:00"}}},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")


class AdminKioskTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_create_kiosk_returns_token_once_and_stores_hash(self) -> None:
        fake_db = _FakeDB([_admin_employee()])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post("/api/admin/kiosks", json={"name": "Lobby Tablet"})

        self.assertEqual(response.status_code, 201)
        body = response.json()
        token = body["auth_token"]
        self.assertEqual(len(token), 64)
        self.assertEqual(body["kiosk"]["name"], "Lobby Tablet")

        kiosks = [item for item in fake_db.added if isinstance(item, Kiosk)]
        self.assertEqual(len(kiosks), 1)
        self.assertNotEqual(kiosks[0].token_hash, token)
        self.assertTrue(verify_kiosk_token(token, kiosks[0].token_hash))

    def test_kiosk_of_other_company_cannot_be_deleted(self) -> None:
        foreign = Kiosk(id=8, company_id=2, name="Other Lobby", token_hash="x", is_active=True)
        fake_db = _FakeDB([_admin_employee(), foreign])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.delete("/api/admin/kiosks/8")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")
        self.assertEqual(fake_db.deleted, [])

    def test_missing_kiosk_is_not_found(self) -> None:
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee()]))
        client = TestClient(app)

        response = client.delete("/api/admin/kiosks/99")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "KIOSK_NOT_FOUND")


class AdminEntryTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_approve_pending_entry(self) -> None:
        entry = _entry(_employee())
        fake_db = _FakeDB([_admin_employee(), entry])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/approve")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["entry"]["status"], "APPROVED")
        self.assertEqual(entry.status, EntryStatus.APPROVED)
        self.assertIn("ENTRY_APPROVED", fake_db.audit_actions())

    def test_reject_requires_reason(self) -> None:
        fake_db = _FakeDB([_admin_employee(), _entry(_employee())])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/reject", json={"reason": ""})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_reject_records_reason(self) -> None:
        entry = _entry(_employee())
        fake_db = _FakeDB([_admin_employee(), entry])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/reject", json={"reason": " No proof of delay "})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(entry.status, EntryStatus.REJECTED)
        self.assertEqual(entry.rejection_reason, "No proof of delay")

    def test_blank_rejection_reason_is_refused(self) -> None:
        entry = _entry(_employee())
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee(), entry]))
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/reject", json={"reason": "   "})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")
        self.assertEqual(entry.status, EntryStatus.PENDING_APPROVAL)

    def test_rejected_entry_cannot_be_approved(self) -> None:
        entry = _entry(_employee(), status=EntryStatus.REJECTED, rejection_reason="No proof of delay")
        fake_db = _FakeDB([_admin_employee(), entry])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/approve")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "ENTRY_NOT_PENDING")
        self.assertEqual(entry.status, EntryStatus.REJECTED)
        self.assertEqual(entry.rejection_reason, "No proof of delay")
        self.assertNotIn("ENTRY_APPROVED", fake_db.audit_actions())

    def test_approved_entry_cannot_be_rejected(self) -> None:
        entry = _entry(_employee(), status=EntryStatus.APPROVED)
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee(), entry]))
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/reject", json={"reason": "Changed my mind"})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "ENTRY_NOT_PENDING")
        self.assertEqual(entry.status, EntryStatus.APPROVED)
        self.assertIsNone(entry.rejection_reason)

    def test_entry_of_other_company_is_not_found(self) -> None:
        fake_db = _FakeDB([_admin_employee(), _entry(_employee(company_id=2))])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post("/api/admin/entries/40/approve")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "ENTRY_NOT_FOUND")

    def test_edit_reads_naive_timestamp_as_local_time(self) -> None:
        entry = _entry(_employee(), status=EntryStatus.APPROVED)
        fake_db = _FakeDB([_admin_employee(), entry])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.put(
            "/api/admin/entries/40",
            json={"new_timestamp": "2024-03-04T08:10:00", "new_type": "CLOCK_IN", "reason": "Forgot to punch"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(entry.ts_utc, datetime(2024, 3, 4, 11, 10, tzinfo=timezone.utc))
        self.assertEqual(entry.original_ts_utc, datetime(2024, 3, 4, 13, 30, tzinfo=timezone.utc))
        self.assertTrue(entry.is_edited)
        self.assertEqual(entry.edit_reason, "Forgot to punch")
        self.assertIn("ENTRY_EDITED", fake_db.audit_actions())

    def test_edit_requires_non_blank_reason(self) -> None:
        entry = _entry(_employee(), status=EntryStatus.APPROVED)
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee(), entry]))
        client = TestClient(app)

        response = client.put(
            "/api/admin/entries/40",
            json={"new_timestamp": "2024-03-04T08:10:00", "new_type": "CLOCK_IN", "reason": "  \t "},
        )

        self.assertEqual(response.status_code, 422)
        self.assertFalse(entry.is_edited)

    def test_medical_certificate_is_not_editable(self) -> None:
        entry = _entry(_employee(), type=EntryType.MEDICAL_CERTIFICATE, status=EntryStatus.APPROVED)
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB([_admin_employee(), entry]))
        client = TestClient(app)

        response = client.put(
            "/api/admin/entries/40",
            json={"new_timestamp": "2024-03-04T08:10:00", "new_type": "CLOCK_IN", "reason": "Fix"},
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "ENTRY_NOT_EDITABLE")

    def test_medical_certificate_is_stored_at_local_noon(self) -> None:
        fake_db = _FakeDB([_admin_employee(), _employee()])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.post(
            "/api/admin/medical-certificate",
            json={"employee_id": "emp-1", "day": "2024-03-04", "reason": "Flu"},
        )

        self.assertEqual(response.status_code, 201)
        certificates = [item for item in fake_db.added if isinstance(item, TimeEntry)]
        self.assertEqual(len(certificates), 1)
        certificate = certificates[0]
        self.assertEqual(certificate.type, EntryType.MEDICAL_CERTIFICATE)
        self.assertEqual(certificate.status, EntryStatus.APPROVED)
        self.assertEqual(certificate.ts_utc, datetime(2024, 3, 4, 15, 0, tzinfo=timezone.utc))
        self.assertEqual(certificate.justification, "Flu")

    def test_report_balances_complete_day(self) -> None:
        employee = _employee()
        day_entries = [
            _entry(employee, id=1, ts_utc=datetime(2024, 3, 4, 11, 0, tzinfo=timezone.utc), status=EntryStatus.APPROVED),
            _entry(employee, id=2, type=EntryType.BREAK_START, ts_utc=datetime(2024, 3, 4, 15, 0, tzinfo=timezone.utc), status=EntryStatus.APPROVED),
            _entry(employee, id=3, type=EntryType.BREAK_END, ts_utc=datetime(2024, 3, 4, 16, 0, tzinfo=timezone.utc), status=EntryStatus.APPROVED),
            _entry(employee, id=4, type=EntryType.CLOCK_OUT, ts_utc=datetime(2024, 3, 4, 20, 3, tzinfo=timezone.utc), status=EntryStatus.APPROVED),
        ]
        fake_db = _FakeDB([_admin_employee(), employee], scalars_results=[day_entries])
        app.dependency_overrides[require_admin] = lambda: ADMIN_CLAIMS
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.get(
            "/api/admin/reports/time-entries",
            params={"employee_id": "emp-1", "start_date": "2024-03-04", "end_date": "2024-03-04"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["period_balance"], "+00:03")
        self.assertEqual(len(body["days"]), 1)
        self.assertEqual(body["days"][0]["daily_balance"], "+00:03")
        self.assertFalse(body["days"][0]["in_progress"])


if __name__ == "__main__":
    unittest.main()
