"""Lifecycle hooks invoked around single-shot attempts and loop iterations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agent_loop.loop import IterationResult
    from agent_loop.models import ExecuteRequest, ExecuteResult
    from agent_loop.prd import UserStory


class LifecycleHooks:
    """No-op hooks; subclass and override the boundaries you care about.

    Hooks run synchronously. An exception raised by a hook propagates to the
    caller of the manager or loop.
    """

    def before_execute(self, request: ExecuteRequest) -> None:
        pass

    def after_execute(self, result: ExecuteResult) -> None:
        pass

    def before_iteration(self, iteration: int, story: UserStory) -> None:
        pass

    def after_iteration(self, outcome: IterationResult) -> None:
        pass
