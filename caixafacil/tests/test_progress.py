"""Tests for import progress tracking."""

import gc
import weakref

import pytest

from caixafacil.models import ImportStatus
from caixafacil.services import progress as progress_module
from caixafacil.services.importer import ImportRequest
from caixafacil.services.progress import (
    ImportProgress,
    InvalidTransitionError,
    clear_import,
    get_import,
    list_active_imports,
    register_import,
)


def new_progress() -> ImportProgress:
    return ImportProgress(import_id="0123456789abcdef", filename="extrato.csv")


class TestImportProgress:
    """Test the status sequence."""

    def test_starts_idle(self):
        entry = new_progress()
        assert entry.status == ImportStatus.IDLE
        assert entry.progress == 0

    def test_happy_path(self):
        entry = new_progress()

        entry.start()
        assert entry.status == ImportStatus.UPLOADING
        assert entry.progress == 10

        entry.advance(30, "Analisando extrato...")
        entry.advance(50, "Categorizando...")
        assert entry.status == ImportStatus.PROCESSING
        assert entry.message == "Categorizando..."

        entry.succeed(3)
        assert entry.status == ImportStatus.SUCCESS
        assert entry.progress == 100
        assert entry.imported_count == 3
        assert "3 transações" in entry.message

        entry.reset()
        assert entry.status == ImportStatus.IDLE
        assert entry.progress == 0

    def test_progress_never_goes_backwards(self):
        entry = new_progress()
        entry.start()
        entry.advance(60, "a")
        entry.advance(40, "b")
        assert entry.progress == 60

    def test_error_from_uploading(self):
        entry = new_progress()
        entry.start()
        entry.fail("Erro", "Detalhe")
        assert entry.status == ImportStatus.ERROR
        assert entry.title == "Erro"
        assert entry.detail == "Detalhe"

    def test_retry_restarts_run(self):
        entry = new_progress()
        entry.start()
        entry.advance(90, "Salvando...")
        entry.fail("Erro", "Detalhe")

        entry.start()

        assert entry.status == ImportStatus.UPLOADING
        assert entry.progress == 10
        assert entry.title is None
        assert entry.attempt == 2

    @pytest.mark.parametrize(
        "steps",
        [
            ["succeed"],  # idle -> success
            ["start", "succeed"],  # uploading -> success
            ["start", "reset"],  # uploading -> idle
            ["start", "fail", "succeed"],  # error -> success
        ],
    )
    def test_rejects_invalid_transitions(self, steps):
        entry = new_progress()
        actions = {
            "start": entry.start,
            "succeed": lambda: entry.succeed(1),
            "reset": entry.reset,
            "fail": lambda: entry.fail("t", "d"),
        }

        with pytest.raises(InvalidTransitionError):
            for step in steps:
                actions[step]()

    def test_snapshot(self):
        entry = new_progress()
        entry.start()

        snapshot = entry.snapshot()

        assert snapshot.import_id == entry.import_id
        assert snapshot.status == ImportStatus.UPLOADING
        assert snapshot.progress == 10
        assert snapshot.attempt == 1


class TestRegistry:
    """Test the import registry."""

    def test_register_get_clear(self):
        entry = register_import("registry-test-1", "a.csv")

        assert get_import("registry-test-1") is entry

        clear_import("registry-test-1")
        assert get_import("registry-test-1") is None

    def test_lists_only_running_imports(self):
        running = register_import("registry-test-2", "a.csv")
        running.start()
        register_import("registry-test-3", "b.csv")

        active_ids = [s.import_id for s in list_active_imports()]

        assert "registry-test-2" in active_ids
        assert "registry-test-3" not in active_ids

        clear_import("registry-test-2")
        clear_import("registry-test-3")

    def test_cleans_up_stale_finished_entries(self):
        entry = register_import("registry-test-4", "a.csv")
        entry._created_at -= progress_module.PROGRESS_TTL_SECONDS + 1

        register_import("registry-test-5", "b.csv")

        assert get_import("registry-test-4") is None
        clear_import("registry-test-5")

    def test_stale_failed_entry_releases_its_request(self):
        """The uploaded bytes kept for retry go away with the expired entry."""
        request = ImportRequest(filename="a.csv", contents=b"x" * 1024, bank_account="Nubank")
        request_ref = weakref.ref(request)
        entry = register_import("registry-test-6", "a.csv", request=request)
        del request
        entry.start()
        entry.fail("Erro", "Detalhe")
        entry._created_at -= progress_module.PROGRESS_TTL_SECONDS + 1
        del entry

        register_import("registry-test-7", "b.csv")
        gc.collect()

        assert get_import("registry-test-6") is None
        assert request_ref() is None
        clear_import("registry-test-7")

    def test_running_entry_keeps_its_request(self):
        request = ImportRequest(filename="a.csv", contents=b"x", bank_account="Nubank")
        entry = register_import("registry-test-8", "a.csv", request=request)
        entry.start()
        entry._created_at -= progress_module.PROGRESS_TTL_SECONDS + 1

        register_import("registry-test-9", "b.csv")

        assert get_import("registry-test-8").request is request
        clear_import("registry-test-8")
        clear_import("registry-test-9")
