# util/enums.py
from enum import Enum
from typing import NamedTuple
from fastapi import status


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class ErrorInfo(NamedTuple):
    message: str
    http_status: int


class ErrorMessage(Enum):
    EMPTY_TEXT = ErrorInfo("Text is required", status.HTTP_400_BAD_REQUEST)
    EMPTY_MESSAGE = ErrorInfo("Message is required", status.HTTP_400_BAD_REQUEST)
    UNKNOWN_ENTRY = ErrorInfo("Unknown knowledge entry", status.HTTP_404_NOT_FOUND)
    EMBEDDING_UNAVAILABLE = ErrorInfo(
        "Embedding service returned an unusable vector; entry left unchanged",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
