"""
Running-timer notification collaborator.

The timer only needs "show this project is running" and "dismiss". How that
is presented (tray balloon, mobile notification, nothing) belongs to the UI
layer, which supplies its own Notifier subclass.
"""

import logging

logger = logging.getLogger(__name__)


class Notifier:
    """
    Abstract base class for presenting the active timer to the user.

    Implementations may fail; the timer logs the failure and carries on.
    """

    async def show(self, project_name: str):
        """Announce that a timer is running for ``project_name``"""
        raise NotImplementedError("Subclasses must implement show")

    async def dismiss(self):
        """Remove the running-timer announcement"""
        raise NotImplementedError("Subclasses must implement dismiss")


class LoggingNotifier(Notifier):
    """Default notifier used when no UI is attached."""

    async def show(self, project_name: str):
        logger.info(f"Timer running: {project_name}")

    async def dismiss(self):
        logger.info("Timer notification dismissed")


class NullNotifier(Notifier):
    """Used when notifications are disabled in the preferences."""

    async def show(self, project_name: str):
        pass

    async def dismiss(self):
        pass
