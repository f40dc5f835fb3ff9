import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

MAX_UPLOAD_BYTES = 2 * 1024 * 1024
UPLOAD_URL_PREFIX = "/uploads"


def _origins(value: Optional[str]) -> List[str]:
    if not value:
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass
class Settings:
    """Runtime configuration, read once from the environment."""

    database_url: str = "mongodb://localhost:27017"
    database_name: str = "business_admin"
    upload_backend: str = "local"
    upload_dir: Path = BASE_DIR / "uploads"
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    cloudinary_folder: str = "business-admin"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "business_admin"),
            upload_backend=os.getenv("UPLOAD_BACKEND", "local").lower(),
            upload_dir=Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads"))),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(MAX_UPLOAD_BYTES))),
            cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
            cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
            cloudinary_folder=os.getenv("CLOUDINARY_FOLDER", "business-admin"),
            cors_origins=_origins(os.getenv("FRONTEND_URL")),
            admin_username=os.getenv("ADMIN_USERNAME"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", "8000")),
        )

    @property
    def uses_local_storage(self) -> bool:
        return self.upload_backend == "local"
