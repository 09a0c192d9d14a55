import sys
from enum import Enum
from typing import Type, TypeVar

import click

from .config import (
    DataStoreLocation,
    PromptDefaults,
    ProtectionLevel,
    ProvisioningRequest,
    load_env_files,
)
from .logging_utils import setup_logging, get_logger
from . import provisioner


logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)


def prompt_choice(text: str, enum_cls: Type[E], default: E) -> E:
    """
    허용된 값이 입력될 때까지 계속 다시 묻는다.
    빈 입력은 default 로 처리한다.
    """
    allowed = " or ".join(f"'{m.value}'" for m in enum_cls)
    while True:
        raw = click.prompt(f"{text} ({allowed})", default=default.value).strip()
        if not raw:
            return default
        try:
            return enum_cls(raw)
        except ValueError:
            logger.error("Invalid input. Please enter %s.", allowed)


def collect_request(defaults: PromptDefaults) -> ProvisioningRequest:
    logger.info("Gathering configuration details...")

    project_id = click.prompt(
        "Enter your Google Cloud Project ID", default="", show_default=False
    ).strip()
    if not project_id:
        logger.error("Google Cloud Project ID cannot be empty.")
        sys.exit(1)

    key_ring_name = (
        click.prompt("Enter the Key Ring Name", default=defaults.key_ring_name).strip()
        or defaults.key_ring_name
    )
    key_name = (
        click.prompt("Enter the Key Name", default=defaults.key_name).strip()
        or defaults.key_name
    )

    protection_level = prompt_choice(
        "Enter the protection level", ProtectionLevel, defaults.protection_level
    )
    logger.info("Protection level has been set to '%s'.", protection_level.value)

    data_store_location = prompt_choice(
        "Enter the data store location", DataStoreLocation, defaults.data_store_location
    )

    return ProvisioningRequest(
        project_id=project_id,
        key_ring_name=key_ring_name,
        key_name=key_name,
        protection_level=protection_level,
        data_store_location=data_store_location,
    )


@click.command()
def main() -> None:
    """NotebookLM Enterprise 용 CMEK(KMS 키링/키, IAM) 를 대화형으로 준비하는 CLI"""
    try:
        load_env_files(".")
        defaults = PromptDefaults.from_env()
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)

    setup_logging(1 if defaults.verbose else 0)

    request = collect_request(defaults)
    report = provisioner.run_provisioning(request)
    logger.debug("\n%s", report.summary())

    # 치명 단계에서 멈췄다면 exit 1
    if report.aborted:
        sys.exit(1)
