import logging
import sys

# Chatty at INFO while uploading artifacts; only their warnings are useful here.
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")


class Log:
    """Worker-wide logger for the owner loop, finalization threads and forwarded unit lines.

    Execution units run in separate processes and never log directly; the
    owner re-emits their lines through ``Log.unit`` so every record of a job
    lands in one stream with the job id attached.
    """

    _logger: logging.Logger = logging.getLogger("model_ingest")

    @classmethod
    def configure(cls, log_level: str) -> None:
        """Set the level, attach the stdout handler once and quiet the storage SDK."""
        cls._logger.setLevel(log_level.upper())
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
            )
            cls._logger.addHandler(handler)
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        cls._logger.debug(message, extra=kwargs)

    @classmethod
    def unit(cls, job_id: str, level: str, message: str) -> None:
        """Re-emit a line sent by the execution unit of ``job_id``.

        ``level`` is a level name as sent over the inbox; unknown names log at INFO.
        """
        levelno = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
        cls._logger.log(levelno, f"Unit[{job_id}]: {message}", extra={"job_id": job_id})
