from constants import (
    COL_CLOSE_IMAGE,
    COL_GPC_CODE,
    COL_MAIN_IMAGE,
    COL_METAFIELD_FABRIC,
    COL_METAFIELD_TARGET_GENDER,
    COL_MODEL_IMAGE,
    COL_SIZES,
    COL_STATUS,
    COL_TITLE,
    COL_VENDOR,
    STATUS_PENDING,
)
from content_generator import ContentValidationError
from filenames import RawImageFile, assign_positions
from ledger import ProductLedger
from stage_drafts import DraftStager, image_slot_updates, needs_copy
from fakes import FakeBackend, no_wait_policy


def stager_for(ledger, storage, generator):
    return DraftStager(ledger, storage, generator, default_vendor="Pleasant")


def add_abc123_images(storage):
    storage.add("f-model", "ABC123_model.jpg")
    storage.add("f-main", "ABC123_main.jpg")
    storage.add("f-close", "ABC123_close.jpg")


class TestStageAll:
    def test_new_product_gets_a_generated_draft(self, backend, ledger, storage, generator):
        add_abc123_images(storage)

        summary = stager_for(ledger, storage, generator).stage_all()

        assert summary.to_dict() == {
            "processed": 1, "staged": 1, "imageUpdates": 0, "skipped": 0, "errors": 0, "errorDetails": [],
        }
        row = backend.row_dict(2)
        assert row["ProductKey"] == "ABC123"
        assert row[COL_STATUS] == STATUS_PENDING
        assert row[COL_MAIN_IMAGE] == "f-main"
        assert row[COL_CLOSE_IMAGE] == "f-close"
        assert row[COL_MODEL_IMAGE] == "f-model"
        assert row[COL_TITLE] == "Upcycled Striped Tee"
        assert row[COL_VENDOR] == "Pleasant"
        assert row[COL_SIZES] == "One-size"
        assert row[COL_GPC_CODE] == "67000000-67010000-67010800-10001352"
        assert row[COL_METAFIELD_FABRIC] == "Cotton"
        assert row[COL_METAFIELD_TARGET_GENDER] == "Unisex"
        assert backend.log_actions() == ["draft:generated"]

    def test_generator_gets_the_main_image(self, ledger, storage, generator):
        add_abc123_images(storage)
        stager_for(ledger, storage, generator).stage_all()

        _, image = generator.calls[0]
        assert image.data == b"bytes-f-main"

    def test_unreadable_image_still_generates(self, ledger, storage, generator):
        add_abc123_images(storage)
        storage.fail_reads.add("f-main")

        summary = stager_for(ledger, storage, generator).stage_all()

        assert summary.staged == 1
        assert generator.calls[0][1] is None

    def test_second_pass_is_unchanged(self, backend, ledger, storage, generator):
        add_abc123_images(storage)
        stager = stager_for(ledger, storage, generator)
        stager.stage_all()

        summary = stager.stage_all()

        assert summary.skipped == 1
        assert summary.staged == 0
        assert len(generator.calls) == 1
        assert len(backend.rows) == 1
        assert backend.log_actions() == ["draft:generated", "draft:unchanged"]

    def test_new_image_on_complete_draft_syncs_slot(self, backend, ledger, storage, generator):
        backend.add_row(
            ProductKey="ABC123", Status="PENDING_REVIEW", Title="t", Description="d",
            MetaDescription="m", Tags="x", MainImageId="f-main",
        )
        storage.add("f-main", "ABC123_main.jpg")
        storage.add("f-close", "ABC123_close.jpg")

        summary = stager_for(ledger, storage, generator).stage_all()

        assert summary.image_updates == 1
        assert backend.row_dict(2)[COL_CLOSE_IMAGE] == "f-close"
        assert generator.calls == []
        assert backend.log_actions() == ["draft:images-synced"]

    def test_locked_rows_are_not_regenerated(self, backend, ledger, storage, generator):
        backend.add_row(ProductKey="ABC123", Status="APPROVED")
        storage.add("f-main", "ABC123_main.jpg")

        summary = stager_for(ledger, storage, generator).stage_all()

        assert generator.calls == []
        assert summary.staged == 0
        row = backend.row_dict(2)
        assert row[COL_STATUS] == "APPROVED"
        assert row[COL_MAIN_IMAGE] == "f-main"

    def test_existing_slot_is_never_overwritten(self, backend, ledger, storage, generator):
        backend.add_row(ProductKey="ABC123", Status="PENDING_REVIEW", MainImageId="manual-id")
        storage.add("f-main", "ABC123_main.jpg")

        stager_for(ledger, storage, generator).stage_all()

        assert backend.row_dict(2)[COL_MAIN_IMAGE] == "manual-id"

    def test_generation_failure_is_recorded_and_others_continue(self, backend, ledger, storage, generator):
        storage.add("a-main", "AAA_main.jpg")
        storage.add("b-main", "BBB_main.jpg")
        calls = []

        def generate(row_values, image=None):
            calls.append(row_values["ProductKey"])
            if row_values["ProductKey"] == "AAA":
                raise ContentValidationError("Generated content missing fields: title")
            return generator.content

        generator.generate = generate
        summary = stager_for(ledger, storage, generator).stage_all()

        assert summary.processed == 2
        assert summary.errors == 1
        assert summary.staged == 1
        assert summary.error_details[0]["productKey"] == "AAA"
        assert backend.errors[0][1:3] == ["AAA", "stageDrafts"]
        assert "draft:error" in backend.log_actions()

    def test_empty_storage(self, ledger, storage, generator):
        assert stager_for(ledger, storage, generator).stage_all().processed == 0

    def test_unparseable_files_are_ignored(self, backend, ledger, storage, generator):
        storage.add("x", "notes.txt")
        assert stager_for(ledger, storage, generator).stage_all().processed == 0
        assert backend.rows == []


class TestHelpers:
    def _row(self, **values):
        backend = FakeBackend()
        backend.add_row(**values)
        return ProductLedger(backend, retry_policy=no_wait_policy()).snapshot().rows[0]

    def test_needs_copy(self):
        assert needs_copy(self._row(ProductKey="A", Status="PENDING_REVIEW", Title="t"))
        assert not needs_copy(self._row(ProductKey="A", Status="COMPLETE"))
        assert not needs_copy(self._row(
            ProductKey="A", Title="t", Description="d", MetaDescription="m", Tags="x",
        ))

    def test_first_asset_per_role_fills_slot(self):
        assets = assign_positions([
            RawImageFile("m1", "A_main.jpg", modified_time="2024-01-01"),
            RawImageFile("m2", "A_main.png", modified_time="2024-01-02"),
            RawImageFile("z", "A_zoom.jpg"),
        ])
        assert image_slot_updates(self._row(ProductKey="A"), assets) == {COL_MAIN_IMAGE: "m1"}
