"""
gcp_service_agents
------------------

Google 이 관리하는 서비스 에이전트(service identity)를 준비하고,
프로젝트 번호로부터 에이전트 이메일을 계산하는 모듈.
"""

from __future__ import annotations

from google.cloud import storage

from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


DISCOVERY_ENGINE_AGENT_DOMAIN = "gcp-sa-discoveryengine"
STORAGE_AGENT_DOMAIN = "gs-project-accounts"


def service_agent_email(project_number: str, domain: str) -> str:
    return f"service-{project_number}@{domain}.iam.gserviceaccount.com"


def discovery_engine_agent(project_number: str) -> str:
    return service_agent_email(project_number, DISCOVERY_ENGINE_AGENT_DOMAIN)


def storage_agent(project_number: str) -> str:
    return service_agent_email(project_number, STORAGE_AGENT_DOMAIN)


def ensure_service_identity(project_id: str, service: str) -> None:
    """
    서비스 identity 가 없으면 생성한다.
    이미 있는 경우에도 gcloud 가 실패를 돌려줄 수 있으므로, 실패 판단은 호출 측에 맡긴다.
    """
    cmd = [
        "gcloud",
        "beta",
        "services",
        "identity",
        "create",
        f"--service={service}",
        f"--project={project_id}",
        "--quiet",
    ]
    run_command(cmd)


def ensure_storage_service_agent(project_id: str) -> str:
    """
    Cloud Storage 프로젝트 서비스 에이전트를 조회한다.
    조회 API 가 에이전트를 필요 시 생성해 주므로 별도의 create 호출은 없다.
    """
    client = storage.Client(project=project_id)
    email = client.get_service_account_email(project=project_id)
    logger.debug("Cloud Storage 서비스 에이전트: %s", email)
    return email
