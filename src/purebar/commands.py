"""External maintenance commands for purebar."""

import logging
import subprocess
import threading
from enum import Enum

from pydantic import BaseModel, Field

log = logging.getLogger(__name__)


class MaintenanceAction(str, Enum):
    """Coarse maintenance operations delegated to OS tools."""

    BOOST = "boost"
    FLUSH_DNS = "flush_dns"
    MAINTENANCE = "maintenance"


# Opaque OS tools; none of them reports anything useful beyond an exit code
ACTION_COMMANDS: dict[MaintenanceAction, list[str]] = {
    MaintenanceAction.BOOST: ["/usr/bin/purge"],
    MaintenanceAction.FLUSH_DNS: ["dscacheutil", "-flushcache"],
    MaintenanceAction.MAINTENANCE: ["periodic", "daily", "weekly", "monthly"],
}


class CommandOutcome(BaseModel):
    """What is known about a command after its settle window."""

    command: list[str] = Field(default_factory=list)
    launched: bool = Field(False, description="Whether the process started")
    completed: bool = Field(False, description="Whether it exited within the window")
    returncode: int | None = Field(None, description="Exit code if completed")
    error: str | None = Field(None, description="Launch failure message")

    @property
    def timed_out(self) -> bool:
        return self.launched and not self.completed


class CommandRunner:
    """
    Launches a command and waits for it, up to a settle timeout.

    A command still running when the timeout expires is left to finish on
    its own and is reaped by a background thread; the outcome then reports
    ``completed=False``.
    """

    def run(self, command: list[str], timeout: float) -> CommandOutcome:
        """
        Run a command.

        Args:
            command: argv list
            timeout: Seconds to wait for completion

        Returns:
            CommandOutcome
        """
        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            log.warning("Could not launch %s: %s", command[0], e)
            return CommandOutcome(command=command, error=str(e))

        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            log.info("%s still running after %.1fs", command[0], timeout)
            threading.Thread(
                target=proc.wait, name=f"purebar-reap-{proc.pid}", daemon=True
            ).start()
            return CommandOutcome(command=command, launched=True)

        if returncode != 0:
            log.info("%s exited with %d", command[0], returncode)
        return CommandOutcome(command=command, launched=True, completed=True, returncode=returncode)

    def run_action(self, action: MaintenanceAction, timeout: float) -> CommandOutcome:
        """Run the command bound to a maintenance action."""
        return self.run(ACTION_COMMANDS[action], timeout)
