"""
Test suite for the command-line interface.
"""

import pytest

from userop_batcher.cli import build_config, create_parser, main, run_batcher, show_status
from userop_batcher.core.batcher import Batcher
from userop_batcher.relay.interface import RelayConnectionError

from conftest import (
    TARGET_A,
    TARGET_B,
    MockRelay,
    RecordingSleep,
    failures,
    make_entry_dict,
    write_queue,
)


class TestArguments:
    """Tests for argument parsing and config overrides."""

    def test_run_overrides(self, tmp_path):
        args = create_parser().parse_args([
            "run",
            "--bundler", "http://bundler:4337",
            "--queue", str(tmp_path / "q.json"),
            "--max-per-target", "5",
            "--dry-run",
        ])

        config = build_config(args)

        assert config.relay_url == "http://bundler:4337"
        assert config.queue_path == str(tmp_path / "q.json")
        assert config.max_per_target_per_window == 5
        assert config.dry_run is True

    def test_run_defaults(self, monkeypatch):
        monkeypatch.delenv("BATCHER_MAX_PER_TARGET_PER_WINDOW", raising=False)
        args = create_parser().parse_args(["run"])

        config = build_config(args)

        assert config.max_per_target_per_window == 20
        assert config.rate_window_seconds == 60
        assert config.dry_run is False
        assert config.entrypoint == "0x0576a174D229E3cFA37253523E645A78A0C91B57"

    def test_environment_used_when_flag_absent(self, monkeypatch):
        monkeypatch.setenv("BATCHER_RELAY_URL", "http://env-relay:3000")
        args = create_parser().parse_args(["run"])

        assert build_config(args).relay_url == "http://env-relay:3000"

    def test_no_command_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1


class TestStatus:
    """Tests for the status command."""

    def test_counts_per_target(self, queue_path, capsys):
        write_queue(queue_path, [
            make_entry_dict(0, target=TARGET_A),
            make_entry_dict(1, target=TARGET_A.lower()),
            make_entry_dict(2, target=TARGET_B),
        ])

        assert show_status(str(queue_path)) == 0

        out = capsys.readouterr().out
        assert "3 queued entries" in out
        assert f"{TARGET_A.lower()}: 2" in out
        assert f"{TARGET_B.lower()}: 1" in out

    def test_empty_queue(self, queue_path, capsys):
        assert show_status(str(queue_path)) == 0
        assert "Queue empty." in capsys.readouterr().out

    def test_unreadable_queue(self, queue_path):
        queue_path.write_text("not json", encoding="utf-8")

        assert show_status(str(queue_path)) == 1

    def test_malformed_entries_counted(self, queue_path, capsys):
        write_queue(queue_path, [make_entry_dict(0), {"target": TARGET_B}])

        assert show_status(str(queue_path)) == 0

        out = capsys.readouterr().out
        assert "1 malformed" in out
        assert f"{TARGET_A.lower()}: 1" in out

    def test_queue_path_from_environment(self, queue_path, monkeypatch, capsys):
        monkeypatch.setenv("BATCHER_QUEUE_PATH", str(queue_path))
        write_queue(queue_path, [make_entry_dict(0), make_entry_dict(1, target=TARGET_B)])

        with pytest.raises(SystemExit) as exc_info:
            main(["status"])

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "2 queued entries" in out
        assert f"{TARGET_B.lower()}: 1" in out


class TestRunCommand:
    """Tests for the run command's exit status."""

    @pytest.mark.asyncio
    async def test_empty_queue_succeeds(self, test_config, capsys):
        assert await run_batcher(test_config) == 0
        assert "empty" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_bad_queue_fails(self, test_config, queue_path):
        queue_path.write_text("{{", encoding="utf-8")

        assert await run_batcher(test_config) == 1

    @pytest.mark.asyncio
    async def test_undecodable_queue_fails(self, test_config, queue_path):
        queue_path.write_bytes(b"[\xff\xfe]")

        assert await run_batcher(test_config) == 1
        assert queue_path.read_bytes() == b"[\xff\xfe]"

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail(self, test_config, queue_path, capsys):
        relay = MockRelay(send_results=failures(5))
        sleep = RecordingSleep()
        write_queue(queue_path, [make_entry_dict(0), make_entry_dict(1)])
        before = queue_path.read_bytes()

        batcher = Batcher(test_config, relay=relay, sleep=sleep)

        assert await run_batcher(test_config, batcher=batcher) == 1
        assert len(relay.sent_bundles) == 5
        assert sleep.waits == [2, 4, 8, 16]
        assert queue_path.read_bytes() == before
        assert "Run failed" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_estimation_failure_fails(self, test_config, queue_path, capsys):
        relay = MockRelay(gas_price=RelayConnectionError("connection refused"))
        write_queue(queue_path, [make_entry_dict(0, maxFeePerGas="0x0")])
        before = queue_path.read_bytes()

        batcher = Batcher(test_config, relay=relay, sleep=RecordingSleep())

        assert await run_batcher(test_config, batcher=batcher) == 1
        assert relay.sent_bundles == []
        assert queue_path.read_bytes() == before
        assert "Run failed" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_malformed_entry_reported_as_dropped(self, test_config, queue_path, capsys):
        write_queue(queue_path, [
            make_entry_dict(0),
            make_entry_dict(1, target=TARGET_B, maxFeePerGas="0xzz"),
        ])
        batcher = Batcher(test_config, relay=MockRelay(), sleep=RecordingSleep())

        assert await run_batcher(test_config, batcher=batcher) == 0

        out = capsys.readouterr().out
        assert "Selected: 1" in out
        assert "Dropped:  1" in out
