"""Session controller: the object a host integration talks to.

Owns the session store and wires the reprompt controller, blocker
intake, permission handler and prompt templates to host events.

Usage:
    controller = SessionController.for_project(project_dir, host)
    await controller.on_session_created("ses_1")
    await controller.on_assistant_message("ses_1", [{"type": "text", "text": "..."}])
    decision = await controller.on_session_idle("ses_1")

Every handler catches at its outermost boundary and reports through
the host log. Nothing a handler does may raise into the host.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

from ..adapters.host import HostClient, HostLogger
from ..adapters.permission import DENY, PermissionHandler
from ..shared.commands import CommandResult, NOT_HANDLED, handle_blockers_command
from .config import DiverterConfig, EventCallback, apply_log_level, fire_event
from .errors import DiverterError, HostCallError, InvalidBlockerError, OperationTimeoutError
from .intake import BlockerIntake, BlockerReport, IntakeOutcome
from .models import (
    Blocker,
    BlockerCategory,
    RepromptDecision,
    RepromptPhase,
    SessionState,
    StopReason,
    ToolDecision,
    now_ms,
)
from .reprompt import RepromptController
from .session_store import SessionStore
from .templates import (
    AUTONOMOUS_QUESTION_MESSAGE,
    build_system_prompt,
    compaction_summary,
    continuation_prompt,
    permission_prompt,
)
from .timeouts import with_timeout

logger = logging.getLogger(__name__)

QUESTION_TOOL = "question"
ABORT_ERROR_NAME = "MessageAbortedError"


def _error_name(error: Any) -> str | None:
    if error is None:
        return None
    if isinstance(error, dict):
        name = error.get("name")
        return name if isinstance(name, str) else None
    return getattr(error, "name", None) or type(error).__name__


def _event_session_id(properties: dict[str, Any]) -> str | None:
    info = properties.get("info")
    if isinstance(info, dict) and info.get("id"):
        return info["id"]
    return properties.get("sessionID") or properties.get("session_id")


class SessionController:
    """Per-process controller for every session of one project."""

    def __init__(
        self,
        config: DiverterConfig,
        host: HostClient | None,
        project_dir: str | Path,
        clock: Callable[[], float] = now_ms,
        store: SessionStore | None = None,
        event_callback: EventCallback | None = None,
    ) -> None:
        self._config = config
        self._host = host
        self._project_dir = Path(project_dir)
        self._clock = clock
        self._store = store or SessionStore(config)
        self._event_callback = event_callback
        apply_log_level(config)
        self.log = HostLogger(host)
        self.reprompt = RepromptController(config)
        self.intake = BlockerIntake(config, self._project_dir, clock)
        self.permissions = PermissionHandler(self.intake)

    @classmethod
    def for_project(
        cls,
        project_dir: str | Path,
        host: HostClient | None,
        **kwargs: Any,
    ) -> SessionController:
        """Build a controller from the project's config files."""
        from .yaml_config import load_config
        return cls(load_config(project_dir), host, project_dir, **kwargs)

    @property
    def config(self) -> DiverterConfig:
        return self._config

    @property
    def store(self) -> SessionStore:
        return self._store

    async def _fire(self, event_type: str, session_id: str, **data: Any) -> None:
        await fire_event(
            self._event_callback,
            {"type": event_type, "session_id": session_id, **data},
        )

    async def _inject(self, session_id: str, text: str, label: str) -> None:
        """Send a prompt into the session within prompt_timeout_ms.

        Raises OperationTimeoutError on expiry and HostCallError for any
        other failure.
        """
        if self._host is None:
            raise HostCallError("inject_prompt", session_id, "no host client")
        try:
            await with_timeout(
                self._host.inject_prompt(session_id, text),
                self._config.prompt_timeout_ms,
                label,
            )
        except OperationTimeoutError:
            raise
        except Exception as exc:
            raise HostCallError("inject_prompt", session_id, str(exc)) from exc

    async def _log_intake(
        self,
        session_id: str,
        outcome: IntakeOutcome,
        blocker: Blocker | None,
        question: str,
    ) -> None:
        extra = {"sessionId": session_id}
        if blocker is not None:
            extra["blockerId"] = blocker.id
        if outcome == IntakeOutcome.RECORDED:
            await self.log.info(f"Blocker logged: {question}", extra)
            await self._fire(
                "blocker_recorded", session_id,
                blocker_id=blocker.id if blocker else None,
            )
        elif outcome == IntakeOutcome.QUEUED:
            await self.log.error(
                "Failed to log blocker to file, queued for retry", None, extra,
            )
        elif outcome == IntakeOutcome.DUPLICATE:
            await self.log.info(f"Duplicate blocker skipped (cooldown): {question}", extra)
        elif outcome == IntakeOutcome.CAP_REACHED:
            await self.log.info(
                f"Max blockers reached ({self._config.max_blockers_per_run})", extra,
            )

    # ── Session lifecycle ────────────────────────────────────

    async def on_session_created(
        self, session_id: str, config: DiverterConfig | None = None,
    ) -> SessionState | None:
        try:
            state = self._store.create(session_id, config)
            await self.log.info("Session created", {"sessionId": session_id})
            return state
        except Exception as exc:
            await self.log.error("Error in session created handler", exc, {"sessionId": session_id})
            return None

    async def on_session_deleted(self, session_id: str) -> None:
        try:
            state = self._store.delete(session_id)
            if state is None:
                await self.log.debug("Session deleted without state", {"sessionId": session_id})
                return
            await self.log.info("Session ended", {
                "sessionId": session_id,
                "blockersLogged": len(state.blockers),
                "repromptCount": state.reprompt_count,
                "pendingWrites": len(state.pending_writes),
            })
        except Exception as exc:
            await self.log.error("Error in session deleted handler", exc, {"sessionId": session_id})

    async def on_assistant_message(
        self, session_id: str, parts: Iterable[Any], role: str = "assistant",
    ) -> None:
        try:
            state = self._store.get_or_create(session_id)
            text = self.reprompt.capture_message(state, parts, role)
            if text is not None:
                await self.log.debug("Captured assistant message", {
                    "sessionId": session_id, "length": len(text),
                })
        except Exception as exc:
            await self.log.error("Error capturing assistant message", exc, {"sessionId": session_id})

    async def on_session_idle(self, session_id: str) -> RepromptDecision | None:
        """Decide whether to nudge the agent, and nudge it if so.

        Returns the decision, or None when the handler failed or an
        evaluation for this session is already in flight. An evaluation
        this call started never outlives it: failure, timeout or
        cancellation all end in STOPPED.
        """
        evaluating: SessionState | None = None
        try:
            state = self._store.get_or_create(session_id)
            if state.phase == RepromptPhase.EVALUATING:
                await self.log.debug("Idle while evaluating, ignored", {"sessionId": session_id})
                return None

            now = self._clock()
            decision = self.reprompt.evaluate(state, now)
            evaluating = state
            if not decision.should_inject:
                await self._log_stop(session_id, decision)
                return decision

            try:
                await self._inject(
                    session_id, continuation_prompt(self._config), "Continuation prompt",
                )
            except OperationTimeoutError as exc:
                await self.log.warn("Continuation prompt timed out", {
                    "sessionId": session_id, "error": str(exc),
                })
                return RepromptDecision(
                    RepromptPhase.STOPPED, StopReason.INJECTION_FAILED, state.reprompt_count,
                )
            except HostCallError as exc:
                await self.log.error("Failed to inject continuation prompt", exc, {
                    "sessionId": session_id,
                })
                return RepromptDecision(
                    RepromptPhase.STOPPED, StopReason.INJECTION_FAILED, state.reprompt_count,
                )

            count = self.reprompt.commit_reprompt(state, self._clock())
            await self.log.info("Continuation prompt injected", {
                "sessionId": session_id,
                "repromptCount": count,
                "maxReprompts": self._config.max_reprompts,
            })
            await self._fire("reprompt_injected", session_id, reprompt_count=count)
            return RepromptDecision(RepromptPhase.CONTINUED, None, count)
        except Exception as exc:
            await self.log.error("Error in session idle handler", exc, {"sessionId": session_id})
            return None
        finally:
            if evaluating is not None:
                self.reprompt.abandon(evaluating)

    async def _log_stop(self, session_id: str, decision: RepromptDecision) -> None:
        extra = {"sessionId": session_id, "repromptCount": decision.reprompt_count}
        reason = decision.reason
        if reason == StopReason.BUDGET_EXHAUSTED:
            await self.log.warn(
                f"Max reprompts reached ({self._config.max_reprompts}), letting agent stop",
                extra,
            )
        elif reason == StopReason.COMPLETED:
            await self.log.info("Completion marker detected, stopping", extra)
        elif reason == StopReason.REPEATING:
            await self.log.warn("Agent is repeating itself, stopping", extra)
        elif reason == StopReason.RECOVERING:
            await self.log.debug("Recovery complete, skipped idle reprompt", extra)
        else:
            await self.log.debug("Blocker diversion disabled, not reprompting", extra)
        await self._fire(
            "session_stopped", session_id, reason=reason.value if reason else None,
        )

    async def on_session_error(self, session_id: str, error: Any = None) -> None:
        try:
            state = self._store.get_or_create(session_id)
            name = _error_name(error)
            if name == ABORT_ERROR_NAME:
                self.reprompt.reset_budget(state)
                await self.log.info("User aborted session, reset reprompt state", {
                    "sessionId": session_id,
                })
            state.is_recovering = True
            await self.log.error("Session error occurred", None, {
                "sessionId": session_id, "errorName": name,
            })
        except Exception as exc:
            await self.log.error("Error in session error handler", exc, {"sessionId": session_id})

    async def on_session_compacting(
        self, session_id: str, context: list[str],
    ) -> list[str]:
        """Append the active-blocker summary to the preserved context."""
        try:
            state = self._store.get_or_create(session_id)
            context.append(compaction_summary(state.blockers))
            await self.log.debug("Preserved blocker state during compaction", {
                "sessionId": session_id, "blockerCount": len(state.blockers),
            })
        except Exception as exc:
            await self.log.error("Error in session compacting hook", exc, {"sessionId": session_id})
        return context

    async def transform_system_prompt(
        self, session_id: str | None, system: list[str],
    ) -> list[str]:
        """Append the autonomous-mode instructions for a diverting session."""
        if not session_id:
            await self.log.debug("No session ID provided, skipping system prompt injection")
            return system
        try:
            state = self._store.get_or_create(session_id)
            if not (state.enabled and state.divert_blockers):
                return system
            template = build_system_prompt(state, self._config)
            system.append(template)
            await self.log.debug("Injected blocker diverter system prompt", {
                "sessionId": session_id, "templateLength": len(template),
            })
        except Exception as exc:
            await self.log.error("Failed to inject system prompt", exc, {"sessionId": session_id})
        return system

    # ── Interception ─────────────────────────────────────────

    async def on_permission_asked(
        self,
        session_id: str,
        permission_type: str,
        metadata: dict[str, Any] | None = None,
        title: str | None = None,
    ) -> str | None:
        """Return "deny" for an intercepted request, None to let the host ask."""
        intercepted = False
        try:
            state = self._store.get_or_create(session_id)
            intercepted = PermissionHandler.intercepts(state, permission_type)
            status, outcome, blocker = self.permissions.handle(
                state, session_id, permission_type, metadata, title,
            )
            if status is None:
                return None
            if outcome is not None:
                await self._log_intake(
                    session_id, outcome, blocker,
                    f"{permission_type} permission request",
                )
            await self._inject_permission_prompt(session_id, permission_type)
            await self._fire("permission_denied", session_id, permission=permission_type)
            return status
        except Exception as exc:
            await self.log.error("Permission hook error", exc, {
                "sessionId": session_id, "permission": permission_type,
            })
            if intercepted:
                await self._inject_permission_prompt(session_id, permission_type)
                return DENY
            return None

    async def _inject_permission_prompt(self, session_id: str, permission_type: str) -> None:
        try:
            await self._inject(
                session_id, permission_prompt(permission_type), "Permission prompt",
            )
            await self.log.info(f"Continuation prompt injected for session {session_id}", {
                "sessionId": session_id, "permission": permission_type,
            })
        except DiverterError as exc:
            await self.log.error("Failed to inject continuation prompt", exc, {
                "sessionId": session_id, "permission": permission_type,
            })

    async def on_tool_execute_before(
        self, session_id: str, tool: str, call_id: str | None = None,
    ) -> ToolDecision:
        """Block the interactive question tool while the session diverts."""
        if tool != QUESTION_TOOL:
            return ToolDecision(blocked=False)
        try:
            state = self._store.get_or_create(session_id)
            if not (state.enabled and state.divert_blockers):
                return ToolDecision(blocked=False)
            report = BlockerReport(
                question=f"Agent tried to use blocked tool: {tool}",
                category=BlockerCategory.QUESTION,
                context=json.dumps(
                    {"tool": tool, "callID": call_id, "sessionID": session_id},
                    separators=(",", ":"),
                ),
            )
            outcome, blocker = self.intake.record(state, session_id, report)
            await self._log_intake(session_id, outcome, blocker, report.question)
            await self._fire("question_blocked", session_id, call_id=call_id)
        except Exception as exc:
            await self.log.error("Tool intercept hook error", exc, {
                "sessionId": session_id, "tool": tool,
            })
        return ToolDecision(blocked=True, message=AUTONOMOUS_QUESTION_MESSAGE)

    # ── Agent-facing surfaces ────────────────────────────────

    async def on_command(self, session_id: str, command: str) -> CommandResult:
        try:
            state = self._store.get_or_create(session_id)
            before = state.divert_blockers
            result = handle_blockers_command(command, state, self._config)
            if result.handled:
                await self.log.info(f"Handled command {command.strip()}", {"sessionId": session_id})
                if state.divert_blockers != before:
                    await self._fire(
                        "diversion_toggled", session_id, divert_blockers=state.divert_blockers,
                    )
            return result
        except Exception as exc:
            await self.log.error("Error handling command", exc, {"sessionId": session_id})
            return NOT_HANDLED

    async def execute_blocker_tool(self, session_id: str, args: Any) -> str:
        """Run the ``blocker`` tool and return its reply for the agent."""
        try:
            report = BlockerReport.from_args(args)
        except InvalidBlockerError as exc:
            await self.log.warn("Rejected blocker tool call", {
                "sessionId": session_id, "reason": exc.reason,
            })
            return str(exc)
        try:
            state = self._store.get_or_create(session_id)
            result = self.intake.report(state, session_id, report)
            await self._log_intake(session_id, result.outcome, result.blocker, report.question)
            return result.reply
        except Exception as exc:
            await self.log.error("Error in blocker tool", exc, {"sessionId": session_id})
            return str(exc) if isinstance(exc, DiverterError) else "Failed to log blocker"

    # ── Raw host events ──────────────────────────────────────

    async def dispatch(self, event: Any) -> Any:
        """Route a raw ``{"type": ..., "properties": {...}}`` host event."""
        try:
            if not isinstance(event, dict):
                await self.log.warn("Invalid event object received")
                return None
            event_type = event.get("type")
            properties = event.get("properties") or {}
            session_id = _event_session_id(properties)
            if not session_id and isinstance(event_type, str) and event_type.startswith("session."):
                await self.log.warn("Session event missing sessionID", {"type": event_type})
                return None

            handler = self._event_handlers().get(event_type)
            if handler is None:
                await self.log.debug(f"Unknown session event type: {event_type}")
                return None
            return await handler(session_id, properties)
        except Exception as exc:
            await self.log.error("Error in session event handler", exc)
            return None

    def _event_handlers(self) -> dict[str, Callable[[str, dict[str, Any]], Awaitable[Any]]]:
        return {
            "session.created": lambda sid, props: self.on_session_created(sid),
            "session.deleted": lambda sid, props: self.on_session_deleted(sid),
            "session.idle": lambda sid, props: self.on_session_idle(sid),
            "session.error": lambda sid, props: self.on_session_error(sid, props.get("error")),
            "session.compacted": self._on_compacted,
        }

    async def _on_compacted(self, session_id: str, properties: dict[str, Any]) -> None:
        await self.log.debug("Session compacted", {"sessionId": session_id})
