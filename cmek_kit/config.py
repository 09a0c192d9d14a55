from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.cmek"]

# KMS 위치는 고정값
KMS_LOCATION = "europe"

DEFAULT_KEY_RING_NAME = "notebooklm_keyring"
DEFAULT_KEY_NAME = "notebooklm_cmek_key"


class ProtectionLevel(str, Enum):
    HSM = "hsm"
    SOFTWARE = "software"

    @property
    def description(self) -> str:
        if self is ProtectionLevel.HSM:
            return "HSM (Hardware Security Module)"
        return "Software"


class DataStoreLocation(str, Enum):
    US = "us"
    EU = "eu"


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y"}


def _get_choice(name: str, enum_cls, default):  # noqa: ANN001
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return enum_cls(raw.strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(
            f"{name} 값이 올바르지 않습니다: {raw!r} (허용: {allowed})"
        ) from None


@dataclass(frozen=True)
class ProvisioningRequest:
    """
    한 번의 프로비저닝 실행에 필요한 입력값.
    수집이 끝난 뒤에는 변경하지 않는다.
    """

    project_id: str
    key_ring_name: str = DEFAULT_KEY_RING_NAME
    key_name: str = DEFAULT_KEY_NAME
    protection_level: ProtectionLevel = ProtectionLevel.SOFTWARE
    data_store_location: DataStoreLocation = DataStoreLocation.EU
    kms_location: str = KMS_LOCATION

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("project_id", "key_ring_name", "key_name", "kms_location")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError("필수 값이 비어 있습니다: " + ", ".join(missing))

    @property
    def location_path(self) -> str:
        return f"projects/{self.project_id}/locations/{self.kms_location}"

    @property
    def key_ring_path(self) -> str:
        return f"{self.location_path}/keyRings/{self.key_ring_name}"

    @property
    def crypto_key_path(self) -> str:
        return f"{self.key_ring_path}/cryptoKeys/{self.key_name}"


@dataclass(frozen=True)
class PromptDefaults:
    # 대화형 프롬프트에서 빈 입력일 때 사용할 값
    key_ring_name: str = DEFAULT_KEY_RING_NAME
    key_name: str = DEFAULT_KEY_NAME
    protection_level: ProtectionLevel = ProtectionLevel.SOFTWARE
    data_store_location: DataStoreLocation = DataStoreLocation.EU
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "PromptDefaults":
        return cls(
            key_ring_name=os.getenv("CMEK_KEY_RING_NAME") or DEFAULT_KEY_RING_NAME,
            key_name=os.getenv("CMEK_KEY_NAME") or DEFAULT_KEY_NAME,
            protection_level=_get_choice(
                "CMEK_PROTECTION_LEVEL", ProtectionLevel, ProtectionLevel.SOFTWARE
            ),
            data_store_location=_get_choice(
                "CMEK_DATA_STORE_LOCATION", DataStoreLocation, DataStoreLocation.EU
            ),
            verbose=_get_bool("CMEK_VERBOSE", False),
        )
