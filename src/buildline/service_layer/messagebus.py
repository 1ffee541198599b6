"""Message bus implementation for handling commands."""

import logging
from collections.abc import Callable
from typing import Any

from .commands import Command

logger = logging.getLogger(__name__)

# pylint: disable=too-few-public-methods


class NoHandlerForCommand(LookupError):
    """Exception raised when no handler is found for a command."""

    def __init__(self, cmd: Command) -> None:
        super().__init__(f"No handler found for command {type(cmd).__name__}")


class MessageBus:
    """A simple message bus for handling commands.

    The message bus routes commands to their handlers and logs the dispatch.
    Unlike a fire-and-forget bus, `handle` returns whatever the handler
    returns, since every buildline command produces a report for the caller
    (build result, formatting report, resolutions...).

    Args:
        command_handlers: A mapping of command types to their handlers.
            Handlers are callables that accept a single command argument;
            other dependencies are injected at bootstrap.
    """

    def __init__(self, command_handlers: dict[type[Command], Callable[..., Any]]) -> None:
        self._command_handlers = command_handlers

    def handle(self, cmd: Command) -> Any:
        """Handle a command by dispatching it to the appropriate handler.

        Args:
            cmd: The command to handle.

        Returns:
            The handler's result.

        Raises:
            NoHandlerForCommand: If no handler is found for the command type.
            Exception: If the handler raises an exception.
        """

        if handler := self._command_handlers.get(type(cmd)):
            handler_name = self._get_handler_name(handler)
            logger.debug("Handling command %s with handler %s", cmd, handler_name)
            try:
                return handler(cmd)
            except Exception:  # pylint: disable=broad-except
                logger.debug(
                    "Exception handling command %s with handler %s",
                    cmd,
                    handler_name,
                    exc_info=True,
                )
                raise
        logger.error("No handler found for command %s", type(cmd).__name__)
        raise NoHandlerForCommand(cmd)

    @staticmethod
    def _get_handler_name(fn: Callable[..., Any]) -> str:
        if hasattr(fn, "__name__"):
            return fn.__name__
        if hasattr(fn, "func") and hasattr(fn.func, "__name__"):
            return fn.func.__name__
        return repr(fn)
