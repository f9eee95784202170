# dubmedia/common/settings.py
from __future__ import annotations

from functools import lru_cache
from typing import Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dubmedia.domain.dataclasses.dubbing_config import DubbingConfig


def _to_bool(v: str | bool | int | None, default: bool = False) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return default
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "y", "on"}


class ElevenLabsConfig(BaseModel):
    base_url: str = "https://api.elevenlabs.io"
    connect_timeout_sec: float = 10.0
    read_timeout_sec: float = 300.0
    upload_chunk_size: int = Field(1024 * 1024, ge=1024)
    download_chunk_size: int = Field(64 * 1024, ge=1024)

    # request options applied to every dubbing submission
    test_mode: bool = False        # watermark + normal resolution (cheaper)
    start_time: int = Field(0, ge=0)
    end_time: int = Field(0, ge=0)
    num_speakers: int = 0          # <= 0 means "1"
    drop_background_audio: bool = False

    @field_validator("test_mode", "drop_background_audio", mode="before")
    @classmethod
    def _boolify(cls, v):
        return _to_bool(v)

    @property
    def timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout_sec, self.read_timeout_sec)

    def to_dubbing_config(self) -> DubbingConfig:
        return DubbingConfig(
            test_mode=self.test_mode,
            start_time=self.start_time,
            end_time=self.end_time,
            num_speakers=self.num_speakers,
            drop_background_audio=self.drop_background_audio,
        )


class FFmpegConfig(BaseModel):
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    probe_timeout_sec: int = 30


class Settings(BaseSettings):
    # -------- App --------
    log_level: str = "INFO"

    # -------- Credentials --------
    elevenlabs_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ELEVENLABS_API_KEY", "elevenlabs_api_key"),
    )

    # -------- Sub-configs --------
    elevenlabs: ElevenLabsConfig = ElevenLabsConfig()
    ffmpeg: FFmpegConfig = FFmpegConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Global settings accessor (cached). Use this everywhere you need config:
        from dubmedia.common.settings import get_settings
        cfg = get_settings()
    """
    return Settings()
