"""AutoChat supervision.

The backend runs the actual agent-to-agent loop and streams one turn per
reply. This controller owns only what the user sees: the start/stop toggle,
the thinking indicator, and the configuration it forwards.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from parley.alerts import AlertBus
from parley.backend import DialogueBackend
from parley.errors import TabBusyError
from parley.session.message import ConversationTurn
from parley.session.tabs import SessionTab

AUTOCHAT_PERSONA = "AutoChat"
DEFAULT_MAX_ITERATIONS = 5


class StopCondition(StrEnum):
    ITERATION_COUNT = "iteration_count"
    USER_INTERRUPT = "user_interrupt"


class AutoChatConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1, alias="maxIterations")
    stop_condition: StopCondition = Field(default=StopCondition.ITERATION_COUNT, alias="stopCondition")
    web_search_enabled: bool = Field(default=False, alias="webSearchEnabled")


def announcement(config: AutoChatConfig) -> str:
    return f"🤖 AutoChat started: agents will run {config.max_iterations} rounds of dialogue."


@dataclass
class _Run:
    tab: SessionTab
    stopped: bool = False


class AutoChatController:
    def __init__(self, backend: DialogueBackend, alerts: AlertBus, *, user_nickname: str = "You") -> None:
        self._backend = backend
        self._alerts = alerts
        self._user_nickname = user_nickname
        self._runs: dict[str, _Run] = {}

    def is_running(self, tab: SessionTab) -> bool:
        run = self._runs.get(tab.tab_id)
        return run is not None and not run.stopped

    async def start(
        self,
        tab: SessionTab,
        initial_input: str,
        config: AutoChatConfig | None = None,
        file_paths: Sequence[str] | None = None,
    ) -> bool:
        """Run one AutoChat session to completion.

        Returns False when the backend call failed.
        """
        if tab.is_thinking:
            raise TabBusyError(f"tab {tab.tab_id} already has an outstanding dispatch")
        config = config or AutoChatConfig()

        if initial_input.strip():
            tab.append(ConversationTurn.user(self._user_nickname, initial_input, attachments=tuple(file_paths or ())))
        tab.append(ConversationTurn.system(announcement(config)))

        run = _Run(tab=tab)
        self._runs[tab.tab_id] = run
        tab.auto_mode = True
        tab.begin_thinking(AUTOCHAT_PERSONA)
        logger.info("autochat.start tab={} max_iterations={} stop={}", tab.tab_id, config.max_iterations, config.stop_condition)
        try:
            await self._backend.start_auto_chat(initial_input, config, list(file_paths) if file_paths else None)
        except Exception as exc:
            logger.exception("autochat.error tab={}", tab.tab_id)
            tab.append(ConversationTurn.error(f"AutoChat failed: {exc}"))
            self._alerts.error("AutoChat Error", str(exc), tab_id=tab.tab_id)
            return False
        finally:
            if not run.stopped:
                tab.end_thinking()
                tab.auto_mode = False
            if self._runs.get(tab.tab_id) is run:
                del self._runs[tab.tab_id]
            logger.info("autochat.end tab={} stopped={}", tab.tab_id, run.stopped)
        return True

    async def stop(self, tab: SessionTab) -> bool:
        """Stop the tab's AutoChat run. Returns False when nothing was running."""
        run = self._runs.get(tab.tab_id)
        if run is None or run.stopped:
            return False
        run.stopped = True
        tab.end_thinking()
        tab.auto_mode = False
        logger.info("autochat.stop tab={}", tab.tab_id)
        await self._backend.cancel_auto_chat()
        return True
