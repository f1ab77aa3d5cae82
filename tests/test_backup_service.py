"""
Tests for snapshot export/import and backup files.
"""

import json

import pytest

from lancr.domain.errors import ValidationError
from lancr.infra.store import SerializedStore
from lancr.services import BackupService, ClientService, InvoiceService, ProjectService
from conftest import T0


@pytest.fixture
def backup(store, tmp_path):
    return BackupService(store, backup_dir=tmp_path / "backups")


async def _seed(store, timer, clock):
    """2 clients, 1 project, 3 entries (the last one running), 1 invoice"""
    clients = ClientService(store)
    first = await clients.add("Acme GmbH", email="billing@acme.test", company="Acme", notes="Net 30")
    await clients.add("Initech")
    project = await ProjectService(store).add(first.id, "Website", hourly_rate=50.0,
                                              deadline="end of March", notes="Phase 2 after launch")

    for minutes in (30, 45):
        await timer.start(project.id)
        clock.advance(minutes * 60 * 1000)
        await timer.stop()
    invoices = InvoiceService(store, clock=clock)
    invoice = await invoices.create(project.id)
    clock.advance(1_000)
    await invoices.mark_paid(invoice.id)
    await timer.start(project.id)
    return project


def _payload(**overrides):
    data = {
        "clients": [{"id": 1, "name": "Acme", "createdAt": T0}],
        "projects": [{"id": 1, "clientId": 1, "name": "Website", "hourlyRate": 50, "createdAt": T0}],
        "timeEntries": [{"id": 1, "projectId": 1, "startedAt": T0, "endedAt": T0 + 60_000, "duration": 60}],
        "invoices": [],
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_export_contains_exactly_the_four_tables(store, timer, clock, backup):
    await _seed(store, timer, clock)
    snapshot = json.loads(await backup.export_payload())

    assert set(snapshot) == {"clients", "projects", "timeEntries", "invoices"}
    assert [len(snapshot[k]) for k in ("clients", "projects", "timeEntries", "invoices")] == [2, 1, 3, 1]
    entry = snapshot["timeEntries"][0]
    assert set(entry) == {"id", "projectId", "startedAt", "endedAt", "duration"}
    assert snapshot["timeEntries"][2]["endedAt"] is None


@pytest.mark.asyncio
async def test_round_trip_into_an_empty_store(store, timer, clock, backup, tmp_path):
    await _seed(store, timer, clock)
    payload = await backup.export_payload()

    target = await SerializedStore.open(f"sqlite+aiosqlite:///{tmp_path / 'restored.db'}")
    try:
        restored = BackupService(target)
        counts = await restored.import_snapshot(payload)
        assert counts == {"clients": 2, "projects": 1, "timeEntries": 3, "invoices": 1}
        assert await restored.export_snapshot() == json.loads(payload)

        for service in (ClientService, ProjectService, InvoiceService):
            assert await service(target).list() == await service(store).list()
        invoice = (await InvoiceService(target).list())[0]
        assert invoice.status == "paid" and invoice.paid_at is not None
    finally:
        await target.close()


@pytest.mark.asyncio
async def test_import_replaces_existing_data(store, timer, clock, backup, clients):
    await _seed(store, timer, clock)
    await timer.stop()

    await backup.import_snapshot(_payload())

    assert [c.name for c in await clients.list()] == ["Acme"]
    snapshot = await backup.export_snapshot()
    assert snapshot["invoices"] == []
    assert len(snapshot["timeEntries"]) == 1


@pytest.mark.asyncio
async def test_old_invoice_rows_default_new_columns(backup):
    invoice = {"id": 1, "projectId": 1, "clientId": 1, "amount": 120.0, "status": "paid",
               "createdAt": T0, "paidAt": T0 + 1}
    await backup.import_snapshot(_payload(invoices=[invoice]))

    row = (await backup.export_snapshot())["invoices"][0]
    assert (row["hours"], row["hourlyRate"], row["invoiceNumber"]) == (0, 0, 0)


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    b"{not json",
    b"[1, 2, 3]",
    {"clients": [], "projects": [], "timeEntries": []},
    {"clients": [{"id": 1}], "projects": [], "timeEntries": [], "invoices": []},
    {"clients": "nope", "projects": [], "timeEntries": [], "invoices": []},
])
async def test_malformed_payload_changes_nothing(store, timer, clock, backup, payload):
    await _seed(store, timer, clock)
    before = await backup.export_snapshot()

    with pytest.raises(ValidationError):
        await backup.import_snapshot(payload)
    assert await backup.export_snapshot() == before


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    # duplicate ids
    {"clients": [{"id": 1, "name": "A", "createdAt": T0}, {"id": 1, "name": "B", "createdAt": T0}]},
    # entry pointing at a missing project
    {"timeEntries": [{"id": 1, "projectId": 9, "startedAt": T0, "duration": 0}]},
    # two running entries
    {"timeEntries": [{"id": 1, "projectId": 1, "startedAt": T0},
                     {"id": 2, "projectId": 1, "startedAt": T0 + 5}]},
    # negative rate
    {"projects": [{"id": 1, "clientId": 1, "name": "W", "hourlyRate": -5, "createdAt": T0}]},
])
async def test_inconsistent_payload_rolls_back(store, timer, clock, backup, overrides):
    await _seed(store, timer, clock)
    before = await backup.export_snapshot()

    with pytest.raises(ValidationError):
        await backup.import_snapshot(_payload(**overrides))
    assert await backup.export_snapshot() == before


@pytest.mark.asyncio
async def test_backup_files_are_created_listed_and_restored(store, timer, clock, backup, clients):
    await _seed(store, timer, clock)
    backup_file = await backup.create_backup()

    assert backup_file.name.startswith("lancr_backup_")
    listed = backup.list_backups()
    assert [b.path.name for b in listed] == [backup_file.name]
    assert listed[0].size_bytes > 0
    assert listed[0].size_human.endswith("KB") or listed[0].size_human.endswith(" B")

    await clients.add("Added after backup")
    counts = await backup.restore_backup(backup_file)
    assert counts["clients"] == 2
    assert "Added after backup" not in [c.name for c in await clients.list()]


@pytest.mark.asyncio
async def test_restore_missing_file_raises(backup, tmp_path):
    with pytest.raises(FileNotFoundError):
        await backup.restore_backup(tmp_path / "nope.json")


@pytest.mark.asyncio
async def test_cleanup_keeps_newest(backup, tmp_path):
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    for day in range(1, 5):
        (backup_dir / f"lancr_backup_2026-01-0{day}_120000.json").write_text("{}")
    (backup_dir / "unrelated.json").write_text("{}")

    removed = backup.cleanup_old_backups(keep_count=2)

    assert removed == 2
    assert sorted(p.name for p in backup_dir.iterdir()) == [
        "lancr_backup_2026-01-03_120000.json",
        "lancr_backup_2026-01-04_120000.json",
        "unrelated.json",
    ]


@pytest.mark.asyncio
async def test_no_backup_directory_configured(store):
    with pytest.raises(ValueError):
        BackupService(store).list_backups()


@pytest.mark.asyncio
async def test_free_text_deadline_from_backup_stays_readable(store, backup):
    project = {"id": 1, "clientId": 1, "name": "Website", "hourlyRate": 50,
               "deadline": "end of March", "createdAt": T0}
    await backup.import_snapshot(_payload(projects=[project]))

    listed = await ProjectService(store).list()
    assert [p.deadline for p in listed] == ["end of March"]
    invoice = await InvoiceService(store).create(1)
    assert invoice.hours == 60 / 3600


@pytest.mark.asyncio
@pytest.mark.parametrize("field, value", [
    ("hours", float("nan")),
    ("hourlyRate", float("inf")),
    ("amount", -10.0),
])
async def test_invoice_amounts_must_be_finite_and_non_negative(store, timer, clock, backup, field, value):
    await _seed(store, timer, clock)
    before = await backup.export_snapshot()
    invoice = {"id": 1, "projectId": 1, "clientId": 1, "amount": 50.0, "createdAt": T0, field: value}

    with pytest.raises(ValidationError, match=field):
        await backup.import_snapshot(_payload(invoices=[invoice]))
    assert await backup.export_snapshot() == before
