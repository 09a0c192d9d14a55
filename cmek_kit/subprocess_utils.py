from __future__ import annotations

import subprocess
from dataclasses import dataclass
from textwrap import shorten
from typing import Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    gcloud 등 외부 명령 실행 실패.

    명령을 찾을 수 없거나, 시간 초과이거나, exit code 가 0 이 아닌 경우 모두 이 예외로 통일한다.
    """

    def __init__(self, message: str, *, cmd: Sequence[str], returncode: int | None = None) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode


def run_command(cmd: Sequence[str], *, timeout: float | None = 300.0) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stdout/stderr 를 캡처하고 DEBUG 레벨로만 남긴다.
    - 실패 시 stderr(없으면 stdout) 일부를 에러 메시지에 포함한다.
    """
    logger.debug("명령 실행: %s", " ".join(cmd))
    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud CLI 가 설치/초기화되어 있는지 확인하세요)",
            cmd=cmd,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
            cmd=cmd,
        ) from e
    except subprocess.CalledProcessError as e:
        stdout = (e.stdout or "").strip()
        stderr = (e.stderr or "").strip()
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + shorten(stderr, width=2000)
        elif stdout:
            detail = "\nstdout:\n" + shorten(stdout, width=2000)
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){detail}",
            cmd=cmd,
            returncode=e.returncode,
        ) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return RunResult(
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )
