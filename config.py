"""Configuration management using Pydantic settings"""

import os
import platform
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional


def get_default_data_path() -> str:
    """
    Get OS-specific default data path for exports and logs.

    Returns:
        - macOS: ~/Library/Application Support/EcoWifi
        - Linux: ~/.local/share/ecowifi
        - Windows: %APPDATA%/EcoWifi
    """
    system = platform.system()
    home = Path.home()

    if system == "Darwin":  # macOS
        return str(home / "Library" / "Application Support" / "EcoWifi")
    elif system == "Windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return str(Path(appdata) / "EcoWifi")
        return str(home / "AppData" / "Roaming" / "EcoWifi")
    else:  # Linux and others
        xdg_data = os.environ.get("XDG_DATA_HOME")
        if xdg_data:
            return str(Path(xdg_data) / "ecowifi")
        return str(home / ".local" / "share" / "ecowifi")


class Settings(BaseSettings):
    """Application settings"""

    # Storage
    DATA_DIR: str = get_default_data_path()

    # Backend admin API (persistence collaborator)
    API_BASE_URL: str = "http://localhost:5000/api"
    API_TOKEN: Optional[str] = None
    API_TIMEOUT_SECONDS: float = 10.0

    # Bulk issuance
    BULK_MAX_COUNT: int = 1000
    BULK_MAX_COLLISION_RETRIES: int = 50

    # Voucher code generation
    CODE_BODY_LENGTH: int = 6
    CODE_CHARSET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    CODE_SEPARATOR: str = "_"

    # Import / export
    IMPORT_DELIMITER: str = ","
    IMPORT_QUOTE_CHAR: str = '"'

    # Admin API server
    ECOWIFI_HOST: str = "localhost"
    ECOWIFI_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True

    def get_export_dir(self) -> Path:
        """Directory where voucher export files are written"""
        export_dir = Path(self.DATA_DIR) / "exports"
        export_dir.mkdir(parents=True, exist_ok=True)
        return export_dir


# Global settings instance
settings = Settings()
