"""
MeteoraRebalancer - Utility Functions
Logging setup, error classification and retry helpers
"""
import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, List, Optional, Type, TypeVar

import requests

from errors import (
    BadRequestError,
    InsufficientFunds,
    NoPositionFound,
    RebalancerError,
    TransientError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ErrorHandler:
    """Error handling utilities"""

    # Message fragments used for errors raised outside our own error kinds
    _MESSAGE_KINDS = [
        ('insufficient funds', InsufficientFunds),
        ('insufficient lamports', InsufficientFunds),
        ('no positions found', NoPositionFound),
        ('bad request', BadRequestError),
        ('timed out', TransientError),
        ('timeout', TransientError),
        ('connection', TransientError),
        ('too many requests', TransientError),
    ]

    @staticmethod
    def classify(error: BaseException) -> Type[RebalancerError]:
        """
        Map an exception to one of the known error kinds

        Args:
            error: Exception raised by a collaborator

        Returns:
            Error kind class (RebalancerError when nothing more specific applies)
        """
        if isinstance(error, RebalancerError):
            return type(error)

        if isinstance(error, (TimeoutError, ConnectionError, asyncio.TimeoutError,
                              requests.exceptions.Timeout,
                              requests.exceptions.ConnectionError)):
            return TransientError

        error_msg = str(error).lower()
        for fragment, kind in ErrorHandler._MESSAGE_KINDS:
            if fragment in error_msg:
                return kind

        return RebalancerError

    @staticmethod
    def is_insufficient_funds(error: BaseException) -> bool:
        """Check if an error signals a funding shortfall"""
        return issubclass(ErrorHandler.classify(error), InsufficientFunds)

    @staticmethod
    def is_no_position(error: BaseException) -> bool:
        """Check if an error signals that the pool has no open position"""
        return issubclass(ErrorHandler.classify(error), NoPositionFound)


class Logger:
    """Enhanced logging utilities"""

    @staticmethod
    def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
        """
        Set up logging configuration

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_file: Optional log file path
        """
        log_level = getattr(logging, level.upper())

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)

        handlers = [console_handler]
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        logging.basicConfig(
            level=log_level,
            handlers=handlers
        )


async def retry_async(operation: Callable[[], Awaitable[T]],
                      retries: int = 5,
                      delay: float = 5.0,
                      description: str = "operation") -> T:
    """
    Await an operation, retrying with a fixed delay on failure

    A funding shortfall aborts on the first attempt.

    Args:
        operation: Zero-argument callable returning an awaitable
        retries: Total number of attempts
        delay: Seconds to wait between attempts
        description: Name used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        InsufficientFunds: On the first funding-related failure
        Exception: The last observed failure once attempts are exhausted
    """
    if retries < 1:
        raise ValueError(f"retries must be at least 1, got {retries}")

    last_error: Optional[BaseException] = None

    for attempt in range(retries):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            logger.warning(f"{description} failed (attempt {attempt + 1}/{retries}): {e}")

            if ErrorHandler.is_insufficient_funds(e):
                if isinstance(e, InsufficientFunds):
                    raise
                raise InsufficientFunds(f"Insufficient funds: {e}") from e

            if attempt < retries - 1:
                await asyncio.sleep(delay)

    logger.error(f"{description} failed after {retries} attempts. Last error: {last_error}")
    raise last_error


async def retry_until_found(fetch: Callable[[], Awaitable[List[Any]]],
                            retries: int = 5,
                            delay: float = 5.0,
                            description: str = "position lookup") -> List[Any]:
    """
    Poll a list-returning operation until it yields at least one item

    An empty result is an expected transient state right after a position
    is created, so running out of attempts returns the last observation
    instead of failing. If every poll fails, the last error is
    raised instead.

    Args:
        fetch: Zero-argument callable returning an awaitable list
        retries: Total number of polls
        delay: Seconds to wait between polls
        description: Name used in log messages

    Returns:
        First non-empty result, or the last (possibly empty) one

    Raises:
        InsufficientFunds: On the first funding-related failure
        Exception: The last failure when every poll failed
    """
    if retries < 1:
        raise ValueError(f"retries must be at least 1, got {retries}")

    last_result: List[Any] = []
    last_error: Optional[BaseException] = None
    observed = False

    for attempt in range(retries):
        try:
            result = await fetch()
            observed = True
            if result:
                return result
            logger.info(f"Attempt {attempt + 1}: {description} returned nothing yet, "
                        f"retrying in {delay:g}s...")
            last_result = result
        except Exception as e:
            last_error = e
            logger.warning(f"{description} failed (attempt {attempt + 1}/{retries}): {e}")
            if ErrorHandler.is_insufficient_funds(e):
                if isinstance(e, InsufficientFunds):
                    raise
                raise InsufficientFunds(f"Insufficient funds: {e}") from e

        if attempt < retries - 1:
            await asyncio.sleep(delay)

    if not observed:
        logger.error(f"{description} failed after {retries} attempts. Last error: {last_error}")
        raise last_error

    return last_result
