"""
Logging configuration shared by the CLI and the WebSocket handler.

Verbosity ladder (matches the CLI's repeated ``-v`` flag):
    0: WARNING
    1: INFO
    2: DEBUG
    3+: DEBUG, including boto3/botocore request logging
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
AWS_LOGGERS = ("boto3", "botocore", "urllib3")


def setup_logging(verbose: int = 0) -> None:
    """
    Configure root logging for the given verbosity.

    Args:
        verbose: Verbosity count (0-3)
    """
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)

    # AWS SDK logging is noisy below -vvv
    aws_level = logging.DEBUG if verbose >= 3 else logging.WARNING
    for name in AWS_LOGGERS:
        logging.getLogger(name).setLevel(aws_level)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
