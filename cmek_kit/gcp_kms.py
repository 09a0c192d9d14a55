"""
gcp_kms
-------

Cloud KMS 키링/키 생성과 키 IAM 바인딩을 담당하는 모듈.

생성 호출의 실패 사유(AlreadyExists 등)는 신뢰하지 않는다.
생성 시도 후 describe(get) 결과만을 존재 여부의 기준으로 삼는다.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import kms

from .config import ProtectionLevel, ProvisioningRequest
from .logging_utils import get_logger


logger = get_logger(__name__)


KMS_CRYPTO_ROLE = "roles/cloudkms.cryptoKeyEncrypterDecrypter"
IAM_POLICY_VERSION = 3

_PROTECTION_LEVELS = {
    ProtectionLevel.SOFTWARE: kms.ProtectionLevel.SOFTWARE,
    ProtectionLevel.HSM: kms.ProtectionLevel.HSM,
}


class EnsureOutcome(str, Enum):
    ALREADY_EXISTED = "already_existed"
    CREATED = "created"
    FAILED = "failed"


def get_client() -> kms.KeyManagementServiceClient:
    return kms.KeyManagementServiceClient()


def _exists(describe: Callable[[], object], label: str) -> bool:
    try:
        describe()
        return True
    except NotFound:
        logger.debug("%s 이(가) 존재하지 않습니다.", label)
        return False
    except GoogleAPIError as e:
        logger.debug("%s 조회 실패: %s", label, e)
        return False


def key_ring_exists(client, request: ProvisioningRequest) -> bool:  # noqa: ANN001
    return _exists(
        lambda: client.get_key_ring(request={"name": request.key_ring_path}),
        f"KMS Key Ring '{request.key_ring_name}'",
    )


def crypto_key_exists(client, request: ProvisioningRequest) -> bool:  # noqa: ANN001
    return _exists(
        lambda: client.get_crypto_key(request={"name": request.crypto_key_path}),
        f"KMS Key '{request.key_name}'",
    )


def ensure_key_ring(client, request: ProvisioningRequest) -> EnsureOutcome:  # noqa: ANN001
    """
    키링 생성을 시도하고, 결과와 무관하게 describe 로 다시 확인한다.
    """
    created = False
    try:
        client.create_key_ring(
            request={
                "parent": request.location_path,
                "key_ring_id": request.key_ring_name,
                "key_ring": {},
            }
        )
        created = True
    except GoogleAPIError as e:
        # 이미 존재하는 경우가 대부분이지만 사유는 아래 describe 로 판단한다.
        logger.debug("Key Ring 생성 호출 실패 (확인 단계로 진행): %s", e)

    if not key_ring_exists(client, request):
        return EnsureOutcome.FAILED
    return EnsureOutcome.CREATED if created else EnsureOutcome.ALREADY_EXISTED


def ensure_crypto_key(client, request: ProvisioningRequest) -> EnsureOutcome:  # noqa: ANN001
    """
    대칭 암호화용 키를 생성한다.
    생성이 실패한 경우에만 describe 로 이미 존재하는지 확인한다.
    """
    try:
        client.create_crypto_key(
            request={
                "parent": request.key_ring_path,
                "crypto_key_id": request.key_name,
                "crypto_key": {
                    "purpose": kms.CryptoKey.CryptoKeyPurpose.ENCRYPT_DECRYPT,
                    "version_template": {
                        "algorithm": kms.CryptoKeyVersion.CryptoKeyVersionAlgorithm.GOOGLE_SYMMETRIC_ENCRYPTION,
                        "protection_level": _PROTECTION_LEVELS[request.protection_level],
                    },
                },
            }
        )
        return EnsureOutcome.CREATED
    except GoogleAPIError as e:
        logger.debug("KMS Key 생성 호출 실패 (확인 단계로 진행): %s", e)

    if crypto_key_exists(client, request):
        return EnsureOutcome.ALREADY_EXISTED
    return EnsureOutcome.FAILED


def add_iam_policy_binding(client, resource: str, member: str, role: str = KMS_CRYPTO_ROLE) -> EnsureOutcome:  # noqa: ANN001
    """
    리소스 IAM 정책에 조건 없는 (member, role) 바인딩을 추가한다.

    이미 같은 바인딩이 있으면 정책을 다시 쓰지 않고 ALREADY_EXISTED 를 돌려준다.
    API 오류는 그대로 올라가며, 치명 여부는 호출 측이 결정한다.
    """
    policy = client.get_iam_policy(
        request={"resource": resource, "options": {"requested_policy_version": IAM_POLICY_VERSION}}
    )

    target = None
    for binding in policy.bindings:
        if binding.role != role or binding.HasField("condition"):
            continue
        if member in binding.members:
            return EnsureOutcome.ALREADY_EXISTED
        target = binding
        break

    if target is not None:
        target.members.append(member)
    else:
        policy.bindings.add(role=role, members=[member])

    # 조건부 바인딩이 섞인 정책은 버전 3 으로만 다시 쓸 수 있다.
    policy.version = IAM_POLICY_VERSION
    client.set_iam_policy(request={"resource": resource, "policy": policy})
    return EnsureOutcome.CREATED
