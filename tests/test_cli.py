from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import IncompleteReadError, ResponseStreamingError

from logstore import cli
from logstore.exceptions import StorageError


@pytest.fixture()
def config(tmp_path):
    path = tmp_path / "logstore.yaml"
    path.write_text(
        "storage:\n"
        "  bucket: logs\n"
        "  path: project/${job.project}/${job.execid}\n"
        "logging:\n"
        "  level: WARNING\n",
        encoding="utf-8",
    )
    return path


def _run(config, tmp_path, *args):
    return cli.main(
        [
            "--config",
            str(config),
            "--local-root",
            str(tmp_path / "archive"),
            "--context",
            "execid=7",
            "--context",
            "project=ops",
            *args,
        ]
    )


def test_store_probe_retrieve_delete(config, tmp_path, capsys):
    source = tmp_path / "output.log"
    source.write_bytes(b"hello\n")
    target = tmp_path / "copy.log"

    assert _run(config, tmp_path, "probe") == cli.EXIT_ABSENT
    assert _run(config, tmp_path, "store", str(source)) == cli.EXIT_OK
    assert (tmp_path / "archive" / "project" / "ops" / "7.rdlog").read_bytes() == b"hello\n"
    assert _run(config, tmp_path, "probe") == cli.EXIT_OK
    assert _run(config, tmp_path, "retrieve", "--output", str(target)) == cli.EXIT_OK
    assert target.read_bytes() == b"hello\n"
    assert _run(config, tmp_path, "delete") == cli.EXIT_OK
    assert _run(config, tmp_path, "probe") == cli.EXIT_ABSENT

    out = capsys.readouterr().out.split()
    assert out == ["absent", "present", "absent"]


def test_filetype_option(config, tmp_path):
    source = tmp_path / "state.json"
    source.write_bytes(b"{}")

    assert _run(config, tmp_path, "--filetype", "state.json", "store", str(source)) == cli.EXIT_OK
    assert (tmp_path / "archive" / "project" / "ops" / "7.state.json").exists()


def test_retrieve_missing_is_storage_error(config, tmp_path):
    target = tmp_path / "out.log"

    assert _run(config, tmp_path, "retrieve", "--output", str(target)) == cli.EXIT_STORAGE
    assert not target.exists()


def test_failed_retrieve_keeps_existing_output(config, tmp_path):
    target = tmp_path / "out.log"
    target.write_bytes(b"previous download")

    assert _run(config, tmp_path, "retrieve", "--output", str(target)) == cli.EXIT_STORAGE
    assert target.read_bytes() == b"previous download"
    assert list(tmp_path.glob("out.log*")) == [target]


def test_store_missing_source_is_io_error(config, tmp_path):
    assert _run(config, tmp_path, "store", str(tmp_path / "missing.log")) == cli.EXIT_IO


def test_missing_config(tmp_path):
    assert cli.main(["--config", str(tmp_path / "nope.yaml"), "probe"]) == cli.EXIT_CONFIGURATION


def test_invalid_credentials_config(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("storage:\n  bucket: logs\n  access_key_id: only-half\n", encoding="utf-8")

    assert cli.main(["--config", str(path), "probe"]) == cli.EXIT_CONFIGURATION


def test_bad_context_pair(config):
    with pytest.raises(SystemExit):
        cli.main(["--config", str(config), "--context", "novalue", "probe"])


def test_run_maps_storage_error(config, monkeypatch):
    storage = MagicMock()
    storage.probe.side_effect = StorageError("boom")
    monkeypatch.setattr(cli, "open_storage", lambda *args, **kwargs: storage)

    assert cli.main(["--config", str(config), "probe"]) == cli.EXIT_STORAGE
    storage.probe.assert_called_once_with("rdlog")


def test_run_maps_truncated_download(config, tmp_path, monkeypatch):
    storage = MagicMock()
    storage.retrieve.side_effect = IncompleteReadError(actual_bytes=3, expected_bytes=10)
    monkeypatch.setattr(cli, "open_storage", lambda *args, **kwargs: storage)

    assert cli.main(["--config", str(config), "retrieve", "-o", str(tmp_path / "out.log")]) == cli.EXIT_IO


def test_interrupted_download_leaves_no_output(config, tmp_path, monkeypatch):
    def retrieve(filetype, output):
        output.write(b"half")
        raise ResponseStreamingError(error=ConnectionResetError("reset by peer"))

    storage = MagicMock()
    storage.retrieve.side_effect = retrieve
    monkeypatch.setattr(cli, "open_storage", lambda *args, **kwargs: storage)
    target = tmp_path / "out.log"

    assert cli.main(["--config", str(config), "retrieve", "--output", str(target)]) == cli.EXIT_IO
    assert list(tmp_path.glob("out.log*")) == []
