"""Tests for TLP policy rendering and the policy file writer.

Validates that:
    - Every key appears exactly once with AC and battery variants
    - Rendering is deterministic without a timestamp
    - Backups are byte-identical copies and never overwrite each other
    - Rewriting identical content reports "unchanged"
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from isaac_setup.configs.loader import SetupConfig
from isaac_setup.provisioning.policy_file import (
    PolicyFileWriter,
    parse_policy,
    policy_entries,
    render_tlp_policy,
)


@pytest.fixture()
def text(config: SetupConfig) -> str:
    return render_tlp_policy(config.cpu_power.ac, config.cpu_power.battery)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRender:
    def test_one_value_per_key(self, text: str) -> None:
        keys = [
            line.split("=", 1)[0]
            for line in text.splitlines()
            if line and not line.startswith("#")
        ]
        assert len(keys) == len(set(keys))

    def test_ac_and_battery_values(self, text: str) -> None:
        values = parse_policy(text)
        assert values["CPU_SCALING_GOVERNOR_ON_AC"] == "performance"
        assert values["CPU_SCALING_GOVERNOR_ON_BAT"] == "powersave"
        assert values["CPU_BOOST_ON_AC"] == "1"
        assert values["CPU_BOOST_ON_BAT"] == "0"
        assert values["PLATFORM_PROFILE_ON_BAT"] == "low-power"
        assert values["WIFI_PWR_ON_BAT"] == "on"
        assert values["TLP_ENABLE"] == "1"

    def test_deterministic(self, config: SetupConfig, text: str) -> None:
        again = render_tlp_policy(config.cpu_power.ac, config.cpu_power.battery)
        assert again == text

    def test_timestamp_header_only(self, config: SetupConfig, text: str) -> None:
        stamped = render_tlp_policy(
            config.cpu_power.ac, config.cpu_power.battery,
            generated_at=datetime(2025, 1, 15, 10, 30),
        )
        assert "# Generated: 2025-01-15 10:30:00" in stamped
        assert parse_policy(stamped) == parse_policy(text)

    def test_entries_are_pairs_or_comments(self, config: SetupConfig) -> None:
        for entry in policy_entries(config.cpu_power.ac, config.cpu_power.battery):
            if isinstance(entry, tuple):
                assert len(entry) == 2
            else:
                assert entry == "" or entry.startswith("#")


class TestParse:
    def test_duplicate_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="CPU_BOOST_ON_AC"):
            parse_policy("CPU_BOOST_ON_AC=1\nCPU_BOOST_ON_AC=0\n")

    def test_quotes_and_comments(self) -> None:
        values = parse_policy('# comment\n\nDISK_DEVICES="nvme0n1 sda"\n')
        assert values == {"DISK_DEVICES": "nvme0n1 sda"}


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class TestWriter:
    def test_backup_is_byte_identical(self, tmp_path: Path, text: str) -> None:
        target = tmp_path / "etc" / "tlp.conf"
        target.parent.mkdir(parents=True)
        original = b"# vendor default\nTLP_ENABLE=1\n\xc3\xa9\n"
        target.write_bytes(original)

        result = PolicyFileWriter(target).apply(text, "20250115_103000")

        assert result.backup == tmp_path / "etc" / "tlp.conf.backup.20250115_103000"
        assert result.backup.read_bytes() == original
        assert target.read_text(encoding="utf-8") == text
        assert result.changed

    def test_no_backup_when_absent(self, tmp_path: Path, text: str) -> None:
        result = PolicyFileWriter(tmp_path / "tlp.conf").apply(text, "20250115_103000")
        assert result.backup is None
        assert result.changed

    def test_same_stamp_keeps_both_backups(self, tmp_path: Path, text: str) -> None:
        target = tmp_path / "tlp.conf"
        target.write_text("first\n", encoding="utf-8")
        writer = PolicyFileWriter(target)
        b1 = writer.apply("second\n", "20250115_103000").backup
        b2 = writer.apply(text, "20250115_103000").backup
        assert b1 != b2
        assert b1.read_text(encoding="utf-8") == "first\n"
        assert b2.read_text(encoding="utf-8") == "second\n"

    def test_idempotent_write(self, tmp_path: Path, text: str) -> None:
        writer = PolicyFileWriter(tmp_path / "tlp.conf")
        assert writer.write(text) is True
        assert writer.write(text) is False
        assert (tmp_path / "tlp.conf").stat().st_mode & 0o777 == 0o644

    def test_no_temp_file_left(self, tmp_path: Path, text: str) -> None:
        PolicyFileWriter(tmp_path / "tlp.conf").write(text)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["tlp.conf"]
