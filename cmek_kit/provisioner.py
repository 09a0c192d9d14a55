"""
provisioner
-----------

CMEK 준비 단계를 순서대로 실행한다.

1. API enable            (치명)
2. 서비스 에이전트 준비   (비치명)
3. 프로젝트 번호 조회     (치명)
4. Key Ring 생성 + 확인   (치명)
5. KMS Key 생성 + 확인    (치명)
6. 키 IAM 바인딩 2건      (비치명)

모든 단계가 멱등이므로 중간에 멈춘 경우에도 처음부터 다시 실행하면 된다.
롤백은 하지 않는다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from google.auth.exceptions import GoogleAuthError

from .config import ProvisioningRequest
from .logging_utils import get_logger
from .subprocess_utils import CommandError
from . import gcp_kms, gcp_project, gcp_service_agents
from .gcp_kms import EnsureOutcome


logger = get_logger(__name__)


STAGE_ENABLE_APIS = "enable_apis"
STAGE_SERVICE_AGENTS = "service_agents"
STAGE_PROJECT_NUMBER = "project_number"
STAGE_KEY_RING = "key_ring"
STAGE_CRYPTO_KEY = "crypto_key"
STAGE_IAM_BINDINGS = "iam_bindings"

ALL_STAGES: List[str] = [
    STAGE_ENABLE_APIS,
    STAGE_SERVICE_AGENTS,
    STAGE_PROJECT_NUMBER,
    STAGE_KEY_RING,
    STAGE_CRYPTO_KEY,
    STAGE_IAM_BINDINGS,
]

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_FAILED = "failed"


class ProvisioningError(RuntimeError):
    """이후 단계를 진행할 수 없는 치명적 실패."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


@dataclass(frozen=True)
class StageResult:
    stage: str
    status: str
    detail: str = ""


@dataclass
class ProvisioningReport:
    request: ProvisioningRequest
    stages: List[StageResult] = field(default_factory=list)
    project_number: Optional[str] = None
    aborted_stage: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.aborted_stage is not None

    @property
    def has_warnings(self) -> bool:
        return any(s.status == STATUS_WARNING for s in self.stages)

    def summary(self) -> str:
        """
        사람이 읽기 좋은 텍스트 요약.
        """
        lines: List[str] = []
        lines.append("# CMEK setup summary")
        lines.append(f"- project: {self.request.project_id}")
        lines.append(f"- key: {self.request.crypto_key_path}")
        lines.append("")
        lines.append("## Stages")
        done = {s.stage: s for s in self.stages}
        for name in ALL_STAGES:
            result = done.get(name)
            if result is None:
                lines.append(f"- {name}: NOT RUN")
                continue
            line = f"- {name}: {result.status.upper()}"
            if result.detail:
                line += f" ({result.detail})"
            lines.append(line)
        return "\n".join(lines)


def log_request(request: ProvisioningRequest) -> None:
    logger.info("Starting setup process for project: %s", request.project_id)
    logger.info(
        "Using Key Ring: '%s', Key: '%s', Protection: %s",
        request.key_ring_name,
        request.key_name,
        request.protection_level.description,
    )
    logger.info(
        "KMS Location: %s, Data Store Location: %s",
        request.kms_location,
        request.data_store_location.value,
    )


def enable_apis(request: ProvisioningRequest) -> StageResult:
    for service in gcp_project.REQUIRED_APIS:
        title = gcp_project.api_title(service)
        logger.info("Enabling %s (%s)...", title, service)
        try:
            gcp_project.enable_service(request.project_id, service)
        except CommandError as e:
            raise ProvisioningError(
                STAGE_ENABLE_APIS, f"Failed to enable {title}. {e}"
            ) from e
        logger.info("Successfully enabled %s.", title)
    return StageResult(STAGE_ENABLE_APIS, STATUS_OK, ", ".join(gcp_project.REQUIRED_APIS))


def ensure_service_agents(request: ProvisioningRequest) -> StageResult:
    """
    두 서비스 에이전트를 준비한다. 여기서의 실패는 실행을 중단하지 않는다.

    Discovery Engine 은 이미 존재하는 경우에도 실패를 돌려줄 수 있어 INFO 로만 남기고,
    Cloud Storage 쪽 실패는 ERROR 로 남긴다.
    """
    problems: List[str] = []

    logger.info("Ensuring Discovery Engine service agent exists...")
    try:
        gcp_service_agents.ensure_service_identity(
            request.project_id, gcp_project.DISCOVERY_ENGINE_API
        )
        logger.info("Successfully ensured Discovery Engine service agent is provisioned.")
    except Exception as e:  # noqa: BLE001
        logger.debug("services identity create 실패: %s", e)
        logger.info(
            "Attempted to ensure Discovery Engine service agent. If it already existed, this is fine."
        )

    logger.info("Ensuring Cloud Storage service agent exists...")
    try:
        gcp_service_agents.ensure_storage_service_agent(request.project_id)
        logger.info("Successfully ensured Cloud Storage service agent is provisioned.")
    except Exception as e:  # noqa: BLE001
        logger.error("Failed to ensure Cloud Storage service agent: %s", e)
        problems.append("storage agent")

    if problems:
        return StageResult(STAGE_SERVICE_AGENTS, STATUS_WARNING, "failed: " + ", ".join(problems))
    return StageResult(STAGE_SERVICE_AGENTS, STATUS_OK)


def resolve_project_number(request: ProvisioningRequest) -> str:
    logger.info("Fetching project number for %s...", request.project_id)
    try:
        number = gcp_project.fetch_project_number(request.project_id)
    except CommandError as e:
        logger.debug("projects describe 실패: %s", e)
        number = ""
    if not number:
        raise ProvisioningError(
            STAGE_PROJECT_NUMBER,
            f"Failed to fetch project number for project {request.project_id}.",
        )
    logger.info("Successfully fetched project number: %s.", number)
    return number


def ensure_key_ring(client, request: ProvisioningRequest) -> StageResult:  # noqa: ANN001
    logger.info(
        "Creating KMS Key Ring '%s' in location '%s'...",
        request.key_ring_name,
        request.kms_location,
    )
    outcome = gcp_kms.ensure_key_ring(client, request)
    if outcome is EnsureOutcome.FAILED:
        raise ProvisioningError(
            STAGE_KEY_RING,
            f"Failed to create or find KMS Key Ring '{request.key_ring_name}'.",
        )
    logger.info(
        "KMS Key Ring '%s' exists in location '%s'. Proceeding.",
        request.key_ring_name,
        request.kms_location,
    )
    return StageResult(STAGE_KEY_RING, STATUS_OK, outcome.value)


def ensure_crypto_key(client, request: ProvisioningRequest) -> StageResult:  # noqa: ANN001
    desc = request.protection_level.description
    logger.info(
        "Creating KMS Key '%s' in Key Ring '%s' with %s protection...",
        request.key_name,
        request.key_ring_name,
        desc,
    )
    outcome = gcp_kms.ensure_crypto_key(client, request)
    if outcome is EnsureOutcome.FAILED:
        raise ProvisioningError(
            STAGE_CRYPTO_KEY, f"Failed to create KMS Key '{request.key_name}'."
        )
    if outcome is EnsureOutcome.CREATED:
        logger.info("Successfully created KMS Key with %s protection.", desc)
    else:
        logger.info(
            "KMS Key '%s' already exists in Key Ring '%s'. Proceeding.",
            request.key_name,
            request.key_ring_name,
        )
    return StageResult(STAGE_CRYPTO_KEY, STATUS_OK, outcome.value)


def grant_key_access(client, request: ProvisioningRequest, project_number: str) -> StageResult:  # noqa: ANN001
    """
    두 서비스 에이전트에 키 암복호화 역할을 부여한다.
    한쪽이 실패해도 다른 쪽은 계속 시도한다.
    """
    role = gcp_kms.KMS_CRYPTO_ROLE
    agents = [
        ("Discovery Engine SA", gcp_service_agents.discovery_engine_agent(project_number)),
        ("Cloud Storage SA", gcp_service_agents.storage_agent(project_number)),
    ]

    failed: List[str] = []
    for label, email in agents:
        logger.info(
            "Granting IAM role '%s' to %s (%s) on key '%s'...",
            role,
            label,
            email,
            request.key_name,
        )
        try:
            gcp_kms.add_iam_policy_binding(
                client, request.crypto_key_path, f"serviceAccount:{email}", role
            )
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to grant '%s' to %s (%s): %s", role, label, email, e)
            failed.append(email)
            continue
        logger.info("Successfully granted or verified '%s' to %s.", role, label)

    if failed:
        return StageResult(STAGE_IAM_BINDINGS, STATUS_WARNING, "failed: " + ", ".join(failed))
    return StageResult(STAGE_IAM_BINDINGS, STATUS_OK)


def _log_completion(request: ProvisioningRequest) -> None:
    logger.info("--- SETUP COMPLETE ---")
    logger.info(
        "Key Ring: %s, Key: %s, KMS Location: %s.",
        request.key_ring_name,
        request.key_name,
        request.kms_location,
    )
    logger.info("Data Store Location: %s.", request.data_store_location.value)
    logger.info(
        "The KMS key has been created and configured with the necessary IAM permissions "
        "for NotebookLM Enterprise in %s for project %s.",
        request.data_store_location.value,
        request.project_id,
    )


def run_provisioning(request: ProvisioningRequest, kms_client=None) -> ProvisioningReport:  # noqa: ANN001
    """
    전체 단계를 실행하고 결과 리포트를 돌려준다.

    치명적 실패가 나면 그 단계에서 멈추고 report.aborted_stage 에 단계 이름을 남긴다.
    kms_client 를 넘기지 않으면 Key Ring 단계 직전에 기본 클라이언트를 생성한다.
    """
    report = ProvisioningReport(request=request)
    log_request(request)

    current = STAGE_ENABLE_APIS
    try:
        report.stages.append(enable_apis(request))

        current = STAGE_SERVICE_AGENTS
        report.stages.append(ensure_service_agents(request))

        current = STAGE_PROJECT_NUMBER
        project_number = resolve_project_number(request)
        report.project_number = project_number
        report.stages.append(StageResult(STAGE_PROJECT_NUMBER, STATUS_OK, project_number))
        logger.info(
            "Target Discovery Engine Service Agent for IAM: %s",
            gcp_service_agents.discovery_engine_agent(project_number),
        )
        logger.info(
            "Target Cloud Storage Service Agent for IAM: %s",
            gcp_service_agents.storage_agent(project_number),
        )

        current = STAGE_KEY_RING
        if kms_client is None:
            try:
                kms_client = gcp_kms.get_client()
            except GoogleAuthError as e:
                raise ProvisioningError(
                    STAGE_KEY_RING, f"KMS 클라이언트를 생성할 수 없습니다: {e}"
                ) from e
        report.stages.append(ensure_key_ring(kms_client, request))

        current = STAGE_CRYPTO_KEY
        report.stages.append(ensure_crypto_key(kms_client, request))

        current = STAGE_IAM_BINDINGS
        report.stages.append(grant_key_access(kms_client, request, project_number))
    except ProvisioningError as e:
        logger.error("%s", e)
        report.stages.append(StageResult(e.stage, STATUS_FAILED, str(e)))
        report.aborted_stage = e.stage
        return report
    except Exception:  # noqa: BLE001
        logger.exception("단계 실행 중 예기치 않은 오류: %s", current)
        report.stages.append(StageResult(current, STATUS_FAILED, "unexpected error"))
        report.aborted_stage = current
        return report

    _log_completion(request)
    return report
