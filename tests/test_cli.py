import json

import pytest

from statecheck.cli import main
from statecheck.config import Settings
from statecheck.domain.exceptions import ErrorCode, IncompleteCollectionError
from statecheck.domain.models import ValueMismatch, VerificationStatus
from statecheck.storage.snapshot import SnapshotReader
from statecheck.verification.pipeline import run_verification


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.delenv("STATECHECK_REPLICA_IDS", raising=False)
    monkeypatch.delenv("STATECHECK_BASE_DIRECTORY", raising=False)
    monkeypatch.chdir(tmp_path)


class TestPipeline:
    """Collection followed by comparison."""

    def test_three_replicas_with_same_thousand_pairs_pass(self, cluster_dir, make_replica):
        data = {f"key-{i:04d}": f"value-{i}" for i in range(1000)}
        for rid in ("8775", "8776", "8777"):
            make_replica(rid, data)

        settings = Settings(
            base_directory=cluster_dir,
            replica_ids=["8775", "8776", "8777"],
            log_records=False,
        )
        report = run_verification(settings)

        assert report.status == VerificationStatus.PASS
        assert report.discrepancies == []
        assert report.record_counts == {"8775": 1000, "8776": 1000, "8777": 1000}

    def test_value_mismatch_between_two_replicas(self, cluster_dir, make_replica):
        make_replica("A", {"k1": "v1", "k2": "v2"})
        make_replica("B", {"k1": "v1", "k2": "v3"})

        report = run_verification(Settings(base_directory=cluster_dir, replica_ids=["A", "B"]))

        assert report.status == VerificationStatus.CONTENT_DIVERGENCE
        assert report.discrepancies == [
            ValueMismatch(replica="B", baseline_replica="A", key=b"k2", expected=b"v2", actual=b"v3")
        ]

    def test_missing_replica_directory(self, cluster_dir, make_replica):
        make_replica("A", {"k1": "v1"})
        make_replica("B", {"k1": "v1"})

        report = run_verification(Settings(base_directory=cluster_dir, replica_ids=["A", "B", "C"]))

        assert report.status == VerificationStatus.INFRASTRUCTURE_FAILURE
        assert [(f.replica, f.error_code) for f in report.failures] == [
            ("C", ErrorCode.DIRECTORY_NOT_FOUND)
        ]
        assert report.record_counts == {"A": 1, "B": 1}
        assert report.discrepancies == []

    def test_reader_override_and_open_timeout(self, cluster_dir, fake_opener):
        settings = Settings(
            base_directory=cluster_dir,
            replica_ids=["A", "B", "C"],
            open_timeout_seconds=0.2,
        )
        for target in settings.replica_targets():
            fake_opener.add(target.path, {b"k1": b"v1"})
        fake_opener.blocked.add(settings.replica_path("C"))

        report = run_verification(settings, reader=SnapshotReader(store_opener=fake_opener))

        assert report.status == VerificationStatus.INFRASTRUCTURE_FAILURE
        assert report.record_counts == {"A": 1, "B": 1}
        assert report.failures[0].replica == "C"
        assert report.failures[0].error_code == ErrorCode.STORE_OPEN_FAILURE


class TestMain:
    """Process exit codes and output streams."""

    def test_pass_exits_zero(self, cluster_dir, make_replica, capsys):
        for rid in ("8775", "8776"):
            make_replica(rid, {"k1": "v1"})

        code = main(["--base-dir", str(cluster_dir), "8775", "8776"])

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("Replica consistency verification: PASS")

    def test_divergence_exits_one_with_json_report(self, cluster_dir, make_replica, capsys):
        make_replica("A", {"k1": "v1", "k2": "v2"})
        make_replica("B", {"k1": "v1", "k2": "v3"})

        code = main(["--base-dir", str(cluster_dir), "--format", "json", "A", "B"])

        captured = capsys.readouterr()
        report = json.loads(captured.out)
        assert code == 1
        assert report["discrepancies"] == [
            {
                "kind": "value_mismatch",
                "replica": "B",
                "baseline_replica": "A",
                "key": "k2",
                "expected": "v2",
                "actual": "v3",
                "key_hex": "6b32",
                "expected_hex": "7632",
                "actual_hex": "7633",
            }
        ]
        # per-key audit records go to stderr, never into the report
        assert "Replica record" in captured.err

    def test_missing_replica_exits_two(self, cluster_dir, make_replica, capsys):
        make_replica("A", {"k1": "v1"})
        make_replica("B", {"k1": "v1"})

        code = main(["--base-dir", str(cluster_dir), "A", "B", "C"])

        out = capsys.readouterr().out
        assert code == 2
        assert "[C] DIRECTORY_NOT_FOUND" in out

    def test_output_file_and_baseline(self, cluster_dir, make_replica, tmp_path, capsys):
        make_replica("A", {"k1": "v1"})
        make_replica("B", {"k1": "v2"})
        output = tmp_path / "out" / "report.csv"

        code = main([
            "--base-dir", str(cluster_dir),
            "--baseline", "B",
            "--format", "csv",
            "--output", str(output),
            "--no-record-log",
            "A", "B",
        ])

        captured = capsys.readouterr()
        assert code == 1
        assert "value_mismatch,A,B,k1,v2,v1" in output.read_text()
        assert "Replica record" not in captured.err

    def test_invalid_configuration_exits_two(self, cluster_dir, capsys):
        code = main(["--base-dir", str(cluster_dir), "--baseline", "Z", "A", "B"])

        captured = capsys.readouterr()
        assert code == 2
        assert "statecheck: Invalid configuration" in captured.err
        assert captured.out == ""

    def test_all_replicas_missing_exits_two(self, cluster_dir, capsys):
        code = main(["--base-dir", str(cluster_dir), "--log-format", "json", "A", "B"])

        captured = capsys.readouterr()
        assert code == 2
        assert "INFRASTRUCTURE_FAILURE" in captured.out
        for line in captured.err.splitlines():
            json.loads(line)

    def test_unwritable_output_exits_two(self, cluster_dir, make_replica, tmp_path, capsys):
        make_replica("A", {"k1": "v1"})
        make_replica("B", {"k1": "v1"})
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("")

        code = main([
            "--base-dir", str(cluster_dir),
            "--output", str(blocker / "report.txt"),
            "A", "B",
        ])

        captured = capsys.readouterr()
        assert code == 2
        assert captured.out.startswith("Replica consistency verification: PASS")
        assert "statecheck:" in captured.err

    def test_unexpected_verification_error_exits_two(self, cluster_dir, monkeypatch, capsys):
        def incomplete(_settings):
            raise IncompleteCollectionError(pending=["B"])

        monkeypatch.setattr("statecheck.cli.run_verification", incomplete)

        code = main(["--base-dir", str(cluster_dir), "A", "B"])

        captured = capsys.readouterr()
        assert code == 2
        assert captured.out == ""
        assert "Collection still pending for replicas: B" in captured.err
