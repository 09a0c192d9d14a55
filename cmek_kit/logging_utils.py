import logging
import sys
import time


PACKAGE_LOGGER = "cmek_kit"


class _BelowErrorFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def setup_logging(verbosity: int = 0) -> None:
    level = logging.INFO
    if verbosity >= 1:
        level = logging.DEBUG

    formatter = logging.Formatter(
        fmt="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime

    out_handler = logging.StreamHandler(sys.stdout)
    out_handler.addFilter(_BelowErrorFilter())
    out_handler.setFormatter(formatter)

    err_handler = logging.StreamHandler(sys.stderr)
    err_handler.setLevel(logging.ERROR)
    err_handler.setFormatter(formatter)

    logger = logging.getLogger(PACKAGE_LOGGER)
    # 여러 번 호출되어도 핸들러가 중복되지 않도록 교체한다.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(out_handler)
    logger.addHandler(err_handler)
    logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
