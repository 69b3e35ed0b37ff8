"""Tests for ISO loop mounting."""

import os
from unittest.mock import Mock, patch

import pytest

from fantastic_probe.disc.mount import IsoMounter
from fantastic_probe.error_handling import MountError


@pytest.fixture
def mounts_file(tmp_path):
    """Empty mount table."""
    path = tmp_path / "mounts"
    path.write_text("/dev/sda1 / ext4 rw 0 0\n")
    return path


@pytest.fixture
def mounter(config, mounts_file):
    """Create mounter with a fake mount table and no real sleeps."""
    return IsoMounter(config, mounts_file=mounts_file, sleep=Mock())


def add_mount(mounts_file, mount_point):
    with open(mounts_file, "a") as f:
        f.write(f"/dev/loop0 {mount_point} udf ro 0 0\n")


def remove_mounts(mounts_file):
    mounts_file.write_text("/dev/sda1 / ext4 rw 0 0\n")


class TestMount:
    """Test mounting."""

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_mount_uses_pid_mount_point(self, mock_run, mounter, config, tmp_path):
        """Test the ISO is loop mounted read-only under a PID-suffixed directory."""
        mock_run.return_value = Mock(returncode=0, stderr="")
        image = tmp_path / "movie.iso"

        mount_point = mounter.mount(image)

        assert mount_point == config.mount_root / f"bd-lang-{os.getpid()}"
        assert mount_point.is_dir()
        assert mock_run.call_args[0][0] == [
            "sudo",
            "mount",
            "-o",
            "loop,ro",
            str(image),
            str(mount_point),
        ]
        assert mock_run.call_args[1]["timeout"] == config.mount_timeout

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_mount_without_sudo(self, mock_run, config, mounts_file, tmp_path):
        """Test sudo can be disabled."""
        mock_run.return_value = Mock(returncode=0, stderr="")
        mounter = IsoMounter(
            config.model_copy(update={"mount_use_sudo": False}),
            mounts_file=mounts_file,
        )

        mounter.mount(tmp_path / "movie.iso")

        assert mock_run.call_args[0][0][0] == "mount"

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_mount_failure_cleans_up(self, mock_run, mounter, tmp_path):
        """Test a failed mount removes the mount point and raises."""
        mock_run.return_value = Mock(returncode=32, stderr="wrong fs type")

        with pytest.raises(MountError):
            mounter.mount(tmp_path / "movie.iso")

        assert not mounter.mount_point_for().exists()


class TestUnmount:
    """Test unmounting."""

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_graceful_unmount(self, mock_run, mounter, mounts_file):
        """Test a successful umount removes the directory."""
        mount_point = mounter.mount_point_for()
        mount_point.mkdir(parents=True)
        add_mount(mounts_file, mount_point)

        def fake_run(cmd, **kwargs):
            if "umount" in cmd:
                remove_mounts(mounts_file)
            return Mock(returncode=0, stderr="")

        mock_run.side_effect = fake_run

        assert mounter.unmount(mount_point) is True
        assert not mount_point.exists()

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_forced_after_graceful_attempts(self, mock_run, mounter, mounts_file):
        """Test three failed graceful unmounts lead to a forced one."""
        mount_point = mounter.mount_point_for()
        mount_point.mkdir(parents=True)
        add_mount(mounts_file, mount_point)

        def fake_run(cmd, **kwargs):
            if "-f" in cmd:
                remove_mounts(mounts_file)
                return Mock(returncode=0, stderr="")
            return Mock(returncode=1, stderr="target is busy")

        mock_run.side_effect = fake_run

        assert mounter.unmount(mount_point) is True
        commands = [c[0][0] for c in mock_run.call_args_list]
        assert sum(1 for c in commands if "umount" in c and "-f" not in c) == 3
        assert any("-f" in c for c in commands)
        assert mounter.sleep.call_count == 3

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_leak_reported_not_raised(self, mock_run, mounter, mounts_file, caplog):
        """Test a mount that refuses to go away is logged, not raised."""
        mount_point = mounter.mount_point_for()
        add_mount(mounts_file, mount_point)
        mock_run.return_value = Mock(returncode=1, stderr="busy")

        assert mounter.unmount(mount_point) is False
        assert "may leak" in caplog.text


class TestStaleCleanup:
    """Test cleanup of leftovers from crashed runs."""

    @patch("fantastic_probe.disc.mount.subprocess.run")
    def test_cleanup_stale_mounts(self, mock_run, mounter, config, mounts_file):
        """Test stale bd-lang mounts are force-unmounted and empty dirs removed."""
        mock_run.return_value = Mock(returncode=0, stderr="")
        stale = config.mount_root / "bd-lang-1234"
        add_mount(mounts_file, stale)
        add_mount(mounts_file, "/mnt/other")
        leftover = config.mount_root / "bd-lang-99"
        leftover.mkdir(parents=True)

        assert mounter.cleanup_stale_mounts() == 1

        commands = [c[0][0] for c in mock_run.call_args_list]
        assert ["sudo", "umount", "-f", str(stale)] in commands
        assert not any("/mnt/other" in c for c in commands)
        assert not leftover.exists()

    def test_nothing_to_clean(self, mounter):
        """Test a clean system reports zero."""
        assert mounter.cleanup_stale_mounts() == 0
