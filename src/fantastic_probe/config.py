"""Configuration management for Fantastic-Probe."""

from pathlib import Path

import tomli
from pydantic import BaseModel, Field, field_validator

SUPPORTED_UPLOAD_TYPES = ("json", "nfo", "srt", "ass", "ssa", "png", "jpg")


class ProbeConfig(BaseModel):
    """Main configuration for Fantastic-Probe."""

    # Paths - MUST be configured for your setup
    strm_root: Path = Field(default=Path("~/media/strm"))
    cache_dir: Path = Field(default=Path("~/.local/share/fantastic-probe"))
    log_dir: Path = Field(default=Path("~/.local/share/fantastic-probe/logs"))
    lock_dir: Path = Field(default=Path("/tmp"))
    mount_root: Path = Field(default=Path("/tmp"))

    # External tools
    ffprobe_path: str = Field(default="ffprobe")
    bd_list_titles_path: str = Field(default="bd_list_titles")
    mount_use_sudo: bool = Field(default=True)

    # Timeout Settings (seconds)
    ffprobe_timeout: int = Field(default=300)  # 5 minutes per attempt
    max_file_processing_time: int = Field(default=3600)  # budget per placeholder
    mount_timeout: int = Field(default=180)  # 3 minutes
    lister_timeout: int = Field(default=120)

    # Scanning
    max_retry_count: int = Field(default=3)
    scan_batch_size: int = Field(default=10)
    scan_item_interval: int = Field(default=10)  # pause between items
    remote_visibility_wait: int = Field(default=60)  # remote listing lag
    min_free_space_mb: int = Field(default=100)
    language_cache_ttl_hours: int = Field(default=24)
    remote_path_markers: list[str] = Field(
        default=[
            "pan_115",
            "alist",
            "clouddrive",
            "rclone",
            "strm_cloud",
            "webdav",
            "davfs",
        ],
    )

    # Transformation tunables
    duration_mismatch_threshold: int = Field(default=60)  # seconds
    min_feature_duration: int = Field(default=1800)  # 30 minutes
    bitrate_anomaly_ratio: float = Field(default=1.5)

    # Upload to remote storage
    upload_enabled: bool = Field(default=False)
    upload_interval: int = Field(default=15)
    upload_file_types: list[str] = Field(default=["json"])

    # Emby integration
    emby_enabled: bool = Field(default=False)
    emby_url: str | None = None
    emby_api_key: str | None = None
    emby_notify_timeout: int = Field(default=5)

    debug: bool = Field(default=False)

    @field_validator(
        "strm_root",
        "cache_dir",
        "log_dir",
        "lock_dir",
        "mount_root",
        mode="before",
    )
    @classmethod
    def expand_paths(cls, v: Path | str) -> Path:
        """Expand user home directory in paths."""
        if isinstance(v, str):
            v = Path(v)
        return v.expanduser().resolve()

    @field_validator("max_retry_count", "scan_batch_size")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Reject counters that would disable scanning."""
        if v < 1:
            msg = "must be at least 1"
            raise ValueError(msg)
        return v

    @field_validator("upload_file_types", mode="before")
    @classmethod
    def normalize_upload_types(cls, v: list[str] | str) -> list[str]:
        """Accept a comma separated string or a list of file types."""
        if isinstance(v, str):
            v = v.split(",")
        types = [t.strip().lower() for t in v if t.strip()]
        unknown = [t for t in types if t not in SUPPORTED_UPLOAD_TYPES]
        if unknown:
            msg = f"Unsupported upload file types: {', '.join(unknown)}"
            raise ValueError(msg)
        return types

    @property
    def failure_cache_db(self) -> Path:
        """SQLite database holding per-placeholder failure counters."""
        return self.cache_dir / "failure_cache.db"

    @property
    def upload_cache_db(self) -> Path:
        """SQLite database holding per-artifact upload status."""
        return self.cache_dir / "upload_cache.db"

    @property
    def language_cache_dir(self) -> Path:
        """Directory for cached disc language tags."""
        return self.cache_dir / "language_tags"

    @property
    def debug_dir(self) -> Path:
        """Raw ffprobe output kept when transformation fails in debug mode."""
        return self.cache_dir / "debug"

    @property
    def scan_lock_file(self) -> Path:
        return self.lock_dir / "fantastic_probe_cron_scanner.lock"

    @property
    def upload_lock_file(self) -> Path:
        return self.lock_dir / "fantastic-probe-upload.lock"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "fantastic_probe.log"

    @property
    def error_log_file(self) -> Path:
        return self.log_dir / "fantastic_probe_errors.log"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [self.cache_dir, self.log_dir, self.lock_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)


def load_config(config_path: Path | None = None) -> ProbeConfig:
    """Load configuration from file or defaults."""
    if config_path is None:
        possible_paths = [
            Path("/etc/fantastic-probe/config.toml"),  # System config
            Path.home() / ".config" / "fantastic-probe" / "config.toml",
            Path.cwd() / "fantastic-probe.toml",
        ]

        for path in possible_paths:
            if path.exists():
                config_path = path
                break

    if config_path and config_path.exists():
        with open(config_path, "rb") as f:
            config_data = tomli.load(f)
        return ProbeConfig(**config_data)
    # Use defaults
    return ProbeConfig()


def create_sample_config(path: Path) -> None:
    """Create a sample configuration file."""
    sample_config = """# Fantastic-Probe Configuration
# ============================

# ============================================================================
# REQUIRED SETTINGS
# ============================================================================

strm_root = "/mnt/media/strm"                     # Root scanned for *.iso.strm placeholders

# ============================================================================
# COMMONLY CUSTOMIZED SETTINGS
# ============================================================================

cache_dir = "/var/lib/fantastic-probe"            # Failure/upload databases, language tag cache
log_dir = "/var/log/fantastic-probe"              # fantastic_probe.log and fantastic_probe_errors.log
ffprobe_path = "ffprobe"                          # ffprobe with bluray/dvd protocol support
bd_list_titles_path = "bd_list_titles"            # From libbluray-bin

# Emby integration (optional)
emby_enabled = false
emby_url = "http://localhost:8096"
emby_api_key = ""
emby_notify_timeout = 5

# Upload generated files next to the ISO on remote storage (optional)
upload_enabled = false
upload_interval = 15                              # Seconds between uploads (rate limiting)
upload_file_types = ["json"]                      # json, nfo, srt, ass, ssa, png, jpg

# ============================================================================
# ADVANCED SETTINGS - Most users can leave these as defaults
# ============================================================================

ffprobe_timeout = 300                             # Per attempt
max_file_processing_time = 3600                   # Budget per placeholder
mount_timeout = 180
mount_use_sudo = true
max_retry_count = 3                               # Failures before a file is skipped for good
scan_batch_size = 10                              # Files processed per scan
scan_item_interval = 10                           # Pause between files
remote_visibility_wait = 60                       # Wait for remote mount listings to refresh
min_free_space_mb = 100
language_cache_ttl_hours = 24

duration_mismatch_threshold = 60                  # Seconds before disc duration wins
min_feature_duration = 1800                       # Plausibility floor for probe duration
bitrate_anomaly_ratio = 1.5                       # Reported/calculated ratio treated as bogus
"""

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(sample_config)
