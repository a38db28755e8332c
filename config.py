from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["*"]
    max_body_size: int = 1024 * 1024  # 1 MB

    # File Storage
    downloads_dir: str = "downloads"

    # Job Configuration
    job_expiry_seconds: int = 3600  # 1 hour
    sweep_interval_seconds: int = 600  # 10 minutes

    # Source validation
    allowed_hosts: List[str] = [
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtu.be",
        "www.youtu.be",
        "youtube-nocookie.com",
        "www.youtube-nocookie.com",
    ]

    # External tools
    ytdlp_binary: str = "yt-dlp"
    ffmpeg_binary: str = "ffmpeg"
    audio_format: str = "mp3"
    audio_quality: str = "0"  # best
    dependency_check_timeout: int = 10

    # Logging
    log_level: str = "INFO"
    log_file: str = "app.log"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False}


settings = Settings()
