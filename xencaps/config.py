"""Capability discovery configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # Toolstack install locations
    execbin_dir: str = "/usr/lib/xen/bin"
    firmware_dir: str = "/usr/lib/xen/boot"

    # Prefix for generated guest network interface names
    net_prefix: str = "vif"

    # False when the toolstack is built without suspend/resume support
    suspend_resume_supported: bool = True

    # xl toolstack queries
    xl_command: str = "xl"
    xl_timeout: float = 30.0  # seconds

    # Emulator -help run
    emulator_help_timeout: float = 10.0  # seconds

    log_level: str = "INFO"

    class Config:
        env_prefix = "XENCAPS_"


settings = Settings()
