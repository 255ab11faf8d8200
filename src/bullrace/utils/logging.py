"""
Logging configuration for the server
"""

import logging.handlers


class AutoQueueListener(logging.handlers.QueueListener):
    """
    Queue listener that starts processing records as soon as
    it is constructed by `logging.config.dictConfig`
    """

    def __init__(self, queue, *handlers, respect_handler_level=True):
        super().__init__(queue, *handlers, respect_handler_level=respect_handler_level)
        self.start()


def generate_default_config() -> dict:
    """
    Generates the default logging config for the server

    Messages go to stdout and to a log file rotated at midnight, both
    fed through a queue handler.

    :return: The default dict config
    """

    return {
        "version": 1,
        "disable_existing_loggers": True,
        "formatters": {
            "standard": {"format": "%(asctime)s [%(levelname)s]: %(message)s"},
            "detailed": {
                "format": "%(asctime)s [%(levelname)s|%(module)s|L%(lineno)d]: %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
        },
        "handlers": {
            "stdout": {
                "level": "INFO",
                "formatter": "standard",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "level": "INFO",
                "formatter": "detailed",
                "class": "logging.handlers.TimedRotatingFileHandler",
                "filename": "logs/bullrace.log",
                "when": "midnight",
                "interval": 1,
                "backupCount": 10,
            },
            "queue_handler": {
                "class": "logging.handlers.QueueHandler",
                "listener": "bullrace.utils.logging.AutoQueueListener",
                "handlers": ["stdout", "file"],
                "respect_handler_level": True,
            },
        },
        "loggers": {
            "root": {
                "handlers": ["queue_handler"],
                "level": "WARNING",
                "propagate": False,
            },
            "bullrace": {
                "handlers": ["queue_handler"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }
