"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 cmek_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.
테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.

KMS API 는 메모리 기반 FakeKmsClient 로 대체한다.
"""

from __future__ import annotations

import logging
import os
import sys
from types import SimpleNamespace
from typing import Dict, List, Optional, Set

import pytest
from google.api_core.exceptions import AlreadyExists, NotFound, PermissionDenied
from google.iam.v1 import policy_pb2


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


class FakeKmsClient:
    """
    KeyManagementServiceClient 중 cmek_kit 이 쓰는 메서드만 흉내 낸다.
    """

    def __init__(self) -> None:
        self.key_rings: Set[str] = set()
        self.crypto_keys: Dict[str, dict] = {}
        self.policies: Dict[str, policy_pb2.Policy] = {}
        self.calls: List[str] = []

        # 실패 주입
        self.create_key_ring_error: Optional[Exception] = None
        self.get_key_ring_error: Optional[Exception] = None
        self.create_crypto_key_error: Optional[Exception] = None
        self.denied_members: Set[str] = set()
        self.set_iam_error: Optional[Exception] = None
        self.iam_requests: List[dict] = []

    def create_key_ring(self, request: dict) -> SimpleNamespace:
        self.calls.append("create_key_ring")
        if self.create_key_ring_error is not None:
            raise self.create_key_ring_error
        name = f"{request['parent']}/keyRings/{request['key_ring_id']}"
        if name in self.key_rings:
            raise AlreadyExists(f"KeyRing {name} already exists.")
        self.key_rings.add(name)
        return SimpleNamespace(name=name)

    def get_key_ring(self, request: dict) -> SimpleNamespace:
        self.calls.append("get_key_ring")
        if self.get_key_ring_error is not None:
            raise self.get_key_ring_error
        if request["name"] not in self.key_rings:
            raise NotFound(f"KeyRing {request['name']} not found.")
        return SimpleNamespace(name=request["name"])

    def create_crypto_key(self, request: dict) -> SimpleNamespace:
        self.calls.append("create_crypto_key")
        if self.create_crypto_key_error is not None:
            raise self.create_crypto_key_error
        parent = request["parent"]
        if parent not in self.key_rings:
            raise NotFound(f"KeyRing {parent} not found.")
        name = f"{parent}/cryptoKeys/{request['crypto_key_id']}"
        if name in self.crypto_keys:
            raise AlreadyExists(f"CryptoKey {name} already exists.")
        self.crypto_keys[name] = request["crypto_key"]
        return SimpleNamespace(name=name)

    def get_crypto_key(self, request: dict) -> SimpleNamespace:
        self.calls.append("get_crypto_key")
        if request["name"] not in self.crypto_keys:
            raise NotFound(f"CryptoKey {request['name']} not found.")
        return SimpleNamespace(name=request["name"])

    def get_iam_policy(self, request: dict) -> policy_pb2.Policy:
        self.calls.append("get_iam_policy")
        self.iam_requests.append(request)
        policy = policy_pb2.Policy()
        stored = self.policies.get(request["resource"])
        if stored is not None:
            policy.CopyFrom(stored)
        return policy

    def set_iam_policy(self, request: dict) -> policy_pb2.Policy:
        self.calls.append("set_iam_policy")
        policy = request["policy"]
        for binding in policy.bindings:
            denied = self.denied_members.intersection(binding.members)
            if denied:
                raise self.set_iam_error or PermissionDenied(f"Permission denied for {sorted(denied)}")
        stored = policy_pb2.Policy()
        stored.CopyFrom(policy)
        self.policies[request["resource"]] = stored
        return stored

    def members(self, resource: str, role: str) -> List[str]:
        policy = self.policies.get(resource)
        if policy is None:
            return []
        out: List[str] = []
        for binding in policy.bindings:
            if binding.role == role:
                out.extend(binding.members)
        return out


@pytest.fixture
def fake_kms() -> FakeKmsClient:
    return FakeKmsClient()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("cmek_kit")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
