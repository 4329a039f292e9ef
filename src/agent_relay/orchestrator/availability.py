"""Headless availability checks for AI tool CLIs."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from agent_relay.orchestrator.adapters import AdapterRegistry
from agent_relay.orchestrator.models import ToolId

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Availability:
    """Whether a tool can run headless, and why not."""

    tool: ToolId
    available: bool
    reason: str | None = None
    executable_path: str | None = None


class AvailabilityProbe:
    """Resolve tool executables on PATH and check required credentials.

    Nothing is cached: PATH and the environment may change between calls,
    e.g. when a user exports an API key mid-session.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        *,
        which: Callable[[str], str | None] = shutil.which,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._registry = registry
        self._which = which
        self._environ = environ

    def is_available(self, tool: ToolId | str) -> bool:
        return self.check(tool).available

    def check(self, tool: ToolId | str) -> Availability:
        """Return availability with a human-readable reason when unavailable."""

        tool_id = ToolId.parse(tool)
        config = self._registry.get(tool_id)
        if config is None:
            return Availability(
                tool=tool_id,
                available=False,
                reason=f"{tool_id.value} does not support headless mode",
            )

        resolved = self._which(config.executable)
        if resolved is None:
            return Availability(
                tool=tool_id,
                available=False,
                reason=f"{config.executable} CLI not installed",
            )

        if config.credential_env:
            environ = os.environ if self._environ is None else self._environ
            if not environ.get(config.credential_env, "").strip():
                logger.debug(
                    "%s CLI detected but %s not set - using automation fallback",
                    config.executable,
                    config.credential_env,
                )
                return Availability(
                    tool=tool_id,
                    available=False,
                    reason=f"{config.credential_env} environment variable not set",
                    executable_path=resolved,
                )

        logger.debug("%s CLI detected at %s - headless mode available", config.name, resolved)
        return Availability(tool=tool_id, available=True, executable_path=resolved)

    def status(self) -> dict[ToolId, Availability]:
        """Availability of every known tool, for status displays."""

        return {tool: self.check(tool) for tool in ToolId}
