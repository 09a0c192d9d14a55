"""
gcp_project
-----------

필수 API enable 과 프로젝트 번호 조회를 담당하는 모듈.
"""

from __future__ import annotations

from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


KMS_API = "cloudkms.googleapis.com"
DISCOVERY_ENGINE_API = "discoveryengine.googleapis.com"

# 활성화 순서대로 나열
REQUIRED_APIS = [KMS_API, DISCOVERY_ENGINE_API]

API_TITLES = {
    KMS_API: "Cloud Key Management Service (KMS) API",
    DISCOVERY_ENGINE_API: "Discovery Engine API",
}


def api_title(service: str) -> str:
    return API_TITLES.get(service, service)


def enable_service(project_id: str, service: str) -> None:
    """
    gcloud services enable 래퍼.
    이미 활성화된 API 를 다시 enable 해도 성공으로 끝난다.
    실패하면 CommandError 가 그대로 올라간다.
    """
    cmd = [
        "gcloud",
        "services",
        "enable",
        service,
        f"--project={project_id}",
        "--quiet",
    ]
    run_command(cmd)


def fetch_project_number(project_id: str) -> str:
    """
    프로젝트 ID 로 숫자형 프로젝트 번호를 조회한다.
    조회 결과가 비어 있으면 빈 문자열을 돌려주며, 판단은 호출 측에서 한다.
    """
    cmd = [
        "gcloud",
        "projects",
        "describe",
        project_id,
        "--format=value(projectNumber)",
        "--quiet",
    ]
    result = run_command(cmd)
    return result.stdout.strip()
