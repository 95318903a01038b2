import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "bamgroupstats", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "bamgroupstats" in cp.stdout
    for cmd in ("stats", "mismatch-qc", "flag-modifier"):
        assert cmd in cp.stdout
