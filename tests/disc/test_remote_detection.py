"""Tests for remote mount detection."""

from pathlib import Path

from fantastic_probe.disc.remote import (
    RemoteMountDetector,
    decode_mount_field,
    owning_mount,
    read_mount_table,
)


class TestMountTable:
    """Test /proc/mounts parsing."""

    def test_read_mount_table(self, tmp_path):
        """Test mount point and type columns are read and unescaped."""
        mounts = tmp_path / "mounts"
        mounts.write_text(
            "/dev/sda1 / ext4 rw 0 0\n"
            "remote: /mnt/my\\040cloud fuse.rclone rw 0 0\n",
        )

        assert read_mount_table(mounts) == [
            ("/", "ext4"),
            ("/mnt/my cloud", "fuse.rclone"),
        ]

    def test_missing_table_is_empty(self, tmp_path):
        """Test an unreadable table yields no entries."""
        assert read_mount_table(tmp_path / "missing") == []

    def test_decode_mount_field(self):
        """Test octal escapes are decoded."""
        assert decode_mount_field("a\\040b\\011c") == "a b\tc"

    def test_owning_mount_prefers_longest(self):
        """Test the most specific mount point wins."""
        entries = [("/", "ext4"), ("/mnt", "nfs"), ("/mnt/media", "fuse.alist")]

        assert owning_mount(Path("/mnt/media/a.iso"), entries) == ("/mnt/media", "fuse.alist")
        assert owning_mount(Path("/mntx/a.iso"), entries) == ("/", "ext4")


class TestRemoteMountDetector:
    """Test the remote mount predicate."""

    def test_path_marker(self, tmp_path):
        """Test known remote markers in the path."""
        detector = RemoteMountDetector(["clouddrive"], mounts_file=tmp_path / "none")

        assert detector("/mnt/CloudDrive/movies/a.iso") is True
        assert detector("/data/movies/a.iso") is False

    def test_filesystem_type(self, tmp_path):
        """Test FUSE and network filesystems count as remote."""
        mounts = tmp_path / "mounts"
        mounts.write_text(
            "/dev/sda1 / ext4 rw 0 0\n"
            "server:/export /net nfs4 rw 0 0\n"
            "x /fuse fuse.sshfs rw 0 0\n",
        )
        detector = RemoteMountDetector([], mounts_file=mounts)

        assert detector(Path("/net/a.iso")) is True
        assert detector(Path("/fuse/a.iso")) is True
        assert detector(Path("/home/a.iso")) is False
