#!/usr/bin/env python3
"""
Base command class for the modular command architecture.

Provides common functionality and interface that all commands inherit.
Uses dependency injection for better testability and maintainability.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List
from argparse import Namespace

from core.container import get_container
from core.exceptions import HarvesterError, UrlSourceError

logger = logging.getLogger(__name__)


class BaseCommand(ABC):
    """
    Base class for all command endpoints.

    Subclasses list their subcommands in `subcommands()`; `execute` dispatches
    to them and maps exceptions to exit codes.
    """

    def __init__(self, container=None):
        """
        Initialize base command with dependency injection container.

        Args:
            container: Optional container instance. If None, uses global container.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self._container = container or get_container()

    @property
    def config(self):
        """Get configuration from container."""
        return self._container.get('config')

    @property
    def request_tracker(self):
        """Get request tracker from container."""
        return self._container.get('request_tracker')

    @property
    def block_detector(self):
        """Get block detector from container."""
        return self._container.get('block_detector')

    def create_client(self, direct: bool = False):
        """Create a page client: the parse API by default, direct fetching on request."""
        return self._container.get('direct_page_client' if direct else 'parse_api_client')

    @abstractmethod
    def subcommands(self) -> Dict[str, Callable[[Namespace], int]]:
        """Map of subcommand name to handler."""

    def execute(self, subcommand: str, args: Namespace) -> int:
        """
        Execute the command with given subcommand and arguments.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        handlers = self.subcommands()
        handler = handlers.get(subcommand)
        if handler is None:
            available = ", ".join(self.get_available_subcommands())
            self.logger.error(f"Unknown subcommand '{subcommand}'. Available: {available}")
            return 1

        try:
            return handler(args)
        except KeyboardInterrupt:
            self.logger.info("Command interrupted by user")
            return 130
        except Exception as e:
            return self.handle_error(e, f"{self.__class__.__name__} {subcommand}")

    def get_available_subcommands(self) -> List[str]:
        """Get list of available subcommands for this command."""
        return sorted(self.subcommands())

    def handle_error(self, error: Exception, context: str = "") -> int:
        """
        Standard error handling for commands.

        Returns:
            Appropriate exit code
        """
        error_msg = f"{context}: {error}" if context else str(error)
        if isinstance(error, HarvesterError):
            self.logger.error(error_msg)
            self.logger.debug(f"Error details: {error.to_dict()}")
        else:
            self.logger.error(error_msg, exc_info=True)

        if isinstance(error, (FileNotFoundError, UrlSourceError)):
            return 2
        elif isinstance(error, PermissionError):
            return 13
        elif isinstance(error, ValueError):
            return 22
        else:
            return 1
