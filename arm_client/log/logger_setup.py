import sys
from typing import Callable

import loguru
from loguru import logger

from arm_client.config.settings import LogLevelType, get_settings
from arm_client.log.sensitive import sensitive_log_filter

BASE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
)


def setup_logger(level: LogLevelType | None = None, enqueue: bool = True) -> None:
    """Route arm_client logs to stdout, masking credentials.

    `level` defaults to the `ARM_CLIENT__LOG_LEVEL` setting. Pass
    `enqueue=False` to write synchronously (tests, short scripts).
    """
    level = level or get_settings().log_level
    logger.remove()
    logger.add(
        sys.stdout,
        level=level.upper(),
        format=_record_formatter(debug=level.upper() == "DEBUG"),
        enqueue=enqueue,  # process logs in background
        diagnose=False,  # hide variable values in log backtrace
        filter=sensitive_log_filter.create_filter(),
    )
    logger.configure(patcher=exception_deserializer)


def _record_formatter(debug: bool) -> Callable[["loguru.Record"], str]:
    def _format(record: "loguru.Record") -> str:
        record_format = BASE_FORMAT
        if "operation_id" in record["extra"]:
            record_format += "<cyan>{extra[operation_id]}</cyan> | "
        record_format += "<level>{message}</level>"
        if debug:
            record_format += " | {extra}"
        return record_format + "\n{exception}"

    return _format


def exception_deserializer(record: "loguru.Record") -> None:
    """
    Workaround for when trying to log exception objects with loguru.
    Loguru doesn't able to deserialize `Exception` subclasses.
    https://github.com/Delgan/loguru/issues/504#issuecomment-917365972
    """
    exception: loguru.RecordException | None = record["exception"]
    if exception is not None:
        fixed = Exception(str(exception.value))
        record["exception"] = exception._replace(value=fixed)
