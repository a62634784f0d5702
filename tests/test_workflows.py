import json

import pytest

from cli import build_parser, run_command
from settings import ConfigError
from workflows.listing_workflows import (
    assemble_pipeline,
    reprocess_product,
    run_process_approved_workflow,
    run_renew_watch_workflow,
    run_reprocess_workflow,
)


@pytest.fixture
def pipeline(ledger, storage, shopify, generator):
    return assemble_pipeline(ledger, storage, shopify, generator)


def add_approved(backend, storage, key, **extra):
    values = {
        "ProductKey": key,
        "Status": "APPROVED",
        "Title": f"Tee {key}",
        "Description": "<p>Tee</p>",
        "MetaDescription": "Tee",
        "Tags": "tee",
        "Style": "T-shirt",
    }
    values.update(extra)
    storage.add(f"{key}-main", f"{key}_main.jpg")
    return backend.add_row(**values)


class TestProcessApproved:
    def test_publishes_each_approved_row(self, pipeline, backend, storage):
        add_approved(backend, storage, "A1")
        add_approved(backend, storage, "B2")
        backend.add_row(ProductKey="C3", Status="PENDING_REVIEW")
        stages = []

        result = run_process_approved_workflow(
            pipeline, {"skip_staging": True}, progress_callback=lambda stage, data: stages.append(stage),
        )

        assert result["stagedDrafts"] == {}
        assert result["processed"] == 2
        assert result["created"] == 2
        assert result["errors"] == 0
        assert stages[0] == "rows_loaded"
        assert stages[-1] == "workflow_completed"

    def test_failed_publish_is_reported_by_key(self, pipeline, backend, storage, shopify):
        add_approved(backend, storage, "A1")
        shopify.failures["create_listing"] = RuntimeError("Shopify down")

        result = run_process_approved_workflow(pipeline, {"skip_staging": True})

        assert result["created"] == 0
        assert result["errors"] == 1
        assert result["failedKeys"] == ["A1"]

    def test_raising_publisher_does_not_stop_the_run(self, pipeline, backend, storage, monkeypatch):
        add_approved(backend, storage, "A1")
        add_approved(backend, storage, "B2")
        original = pipeline.publisher.publish

        def flaky(row):
            if row.product_key == "A1":
                raise ConnectionError("ledger unreachable")
            return original(row)

        monkeypatch.setattr(pipeline.publisher, "publish", flaky)

        result = run_process_approved_workflow(pipeline, {"skip_staging": True})

        assert result["created"] == 1
        assert result["failedKeys"] == ["A1"]

    def test_stages_first_by_default(self, pipeline, storage):
        storage.add("n-main", "NEW1_main.jpg")

        result = run_process_approved_workflow(pipeline)

        assert result["stagedDrafts"]["staged"] == 1
        assert result["processed"] == 0


class TestReprocess:
    def test_status_codes(self, pipeline, backend, storage):
        add_approved(backend, storage, "A1")
        add_approved(backend, storage, "B2", Status="PENDING_REVIEW")

        assert reprocess_product(pipeline, "  ")[0] == 400
        assert reprocess_product(pipeline, "ZZZ")[0] == 404
        assert reprocess_product(pipeline, "B2")[0] == 409
        assert reprocess_product(pipeline, "a1") == (200, {"success": True, "productId": "gid://shopify/Product/1"})
        assert reprocess_product(pipeline, "A1")[0] == 409

    def test_job_result_carries_status_code(self, pipeline):
        result = run_reprocess_workflow(pipeline, {"key": "missing"})
        assert result["status_code"] == 404
        assert "error" in result


def test_renew_watch_requires_drive_storage(pipeline):
    with pytest.raises(ConfigError):
        run_renew_watch_workflow(pipeline)


def test_renew_watch_uses_storage(pipeline, monkeypatch):
    calls = []

    def renew_watch(ledger, base_url):
        calls.append(base_url)
        return {"DRIVE_CHANNEL_ID": "chan-9"}

    monkeypatch.setattr(pipeline.storage, "renew_watch", renew_watch, raising=False)

    assert run_renew_watch_workflow(pipeline) == {"ok": True, "channelId": "chan-9"}
    assert calls == ["http://localhost:8080"]


class TestCli:
    def test_publish_prints_summary(self, pipeline, backend, storage, capsys):
        add_approved(backend, storage, "A1")
        args = build_parser().parse_args(["publish", "--skip-staging"])

        assert run_command(args, pipeline) == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed["created"] == 1

    def test_reprocess_unknown_key_exits_nonzero(self, pipeline, capsys):
        args = build_parser().parse_args(["reprocess", "NOPE"])

        assert run_command(args, pipeline) == 1
        assert json.loads(capsys.readouterr().out)["status_code"] == 404

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
