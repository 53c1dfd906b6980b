"""
Durable Step Runtime

A workflow instance is a fixed sequence of named steps. Each step's result is
committed to a `StepStore` before the next step starts. Re-running the same
instance (after a crash, restart or redelivered event) replays committed
steps from the store without executing them again, and resumes at the first
uncommitted step. A step's external side effects therefore happen at most
once per committed result.

Design choices
--------------
- Step results must be JSON-serializable (they are persisted as JSONB).
- Only `TransientProviderError` is retried, with exponential backoff.
  Configuration errors and everything else fail the step immediately.
- Instance state transitions are recorded alongside step commits so that
  operators can see where an instance stopped. The first state write also
  stores the request payload, which lets a restarted process re-enqueue
  every instance that never reached a terminal state.
- At most one run of an instance executes at a time. Runs hold a lease from
  the StepStore; a run that cannot take it leaves the instance to its holder.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from threading import RLock
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    NamedTuple,
    Optional,
    Protocol,
    Set,
    Tuple,
    Type,
)

from ..config import settings
from ..core.errors import TransientProviderError

logger = logging.getLogger("review.workflow")


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------

class StepRecord(NamedTuple):
    """A committed step result."""
    step_name: str
    result: Any


class InstanceStatus(NamedTuple):
    instance_id: str
    kind: str
    state: str
    error: Optional[str]
    committed_steps: List[str]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Step-local retry policy.

    `max_attempts` counts the first attempt. Delay before attempt n+1 is
    initial_interval * backoff_coefficient ** (n - 1), capped at max_interval.
    """
    max_attempts: int = field(default_factory=lambda: settings.step_max_attempts)
    initial_interval: float = field(default_factory=lambda: settings.step_initial_backoff_seconds)
    backoff_coefficient: float = field(default_factory=lambda: settings.step_backoff_coefficient)
    max_interval: float = 30.0
    retryable: Tuple[Type[BaseException], ...] = (TransientProviderError,)

    def delay_for(self, attempt: int) -> float:
        return min(
            self.max_interval,
            self.initial_interval * (self.backoff_coefficient ** (attempt - 1)),
        )


NO_RETRY = RetryPolicy(max_attempts=1)

TERMINAL_STATES = frozenset({"done", "failed"})


# ---------------------------------------------------------------------
# Step Stores
# ---------------------------------------------------------------------

class StepStore(Protocol):
    async def get_step(self, instance_id: str, step_name: str) -> Optional[StepRecord]: ...

    async def commit_step(self, instance_id: str, step_name: str, result: Any) -> None: ...

    async def set_state(
        self,
        instance_id: str,
        kind: str,
        state: str,
        error: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None: ...

    async def get_instance(self, instance_id: str) -> Optional[InstanceStatus]: ...

    async def list_incomplete(self) -> List[Tuple[str, Dict[str, Any]]]: ...

    def lease(self, instance_id: str) -> AsyncContextManager[bool]: ...


class InMemoryStepStore:
    """
    Process-local step store.

    Results are round-tripped through JSON on commit so that a result which
    could not be persisted by `SqlStepStore` fails here too. Copy-on-read
    semantics keep callers from mutating committed results.
    """

    def __init__(self) -> None:
        self._steps: Dict[str, Dict[str, Any]] = {}
        self._order: Dict[str, List[str]] = {}
        self._instances: Dict[str, Tuple[str, str, Optional[str]]] = {}
        self._payloads: Dict[str, Dict[str, Any]] = {}
        self._leases: Set[str] = set()
        self._lock = RLock()

    async def get_step(self, instance_id: str, step_name: str) -> Optional[StepRecord]:
        with self._lock:
            steps = self._steps.get(instance_id, {})
            if step_name not in steps:
                return None
            return StepRecord(step_name, copy.deepcopy(steps[step_name]))

    async def commit_step(self, instance_id: str, step_name: str, result: Any) -> None:
        value = json.loads(json.dumps(result))
        with self._lock:
            steps = self._steps.setdefault(instance_id, {})
            if step_name in steps:
                # First commit wins
                return
            steps[step_name] = value
            self._order.setdefault(instance_id, []).append(step_name)

    async def set_state(
        self,
        instance_id: str,
        kind: str,
        state: str,
        error: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._lock:
            self._instances[instance_id] = (kind, state, error)
            if payload is not None and instance_id not in self._payloads:
                self._payloads[instance_id] = json.loads(json.dumps(payload))

    async def get_instance(self, instance_id: str) -> Optional[InstanceStatus]:
        with self._lock:
            if instance_id not in self._instances:
                return None
            kind, state, error = self._instances[instance_id]
            return InstanceStatus(
                instance_id, kind, state, error, list(self._order.get(instance_id, []))
            )

    async def list_incomplete(self) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [
                (kind, copy.deepcopy(self._payloads[iid]))
                for iid, (kind, state, _) in self._instances.items()
                if state not in TERMINAL_STATES and iid in self._payloads
            ]

    @asynccontextmanager
    async def lease(self, instance_id: str) -> AsyncIterator[bool]:
        """Yield True if this caller now exclusively runs `instance_id`."""
        with self._lock:
            acquired = instance_id not in self._leases
            self._leases.add(instance_id)
        try:
            yield acquired
        finally:
            if acquired:
                with self._lock:
                    self._leases.discard(instance_id)


# ---------------------------------------------------------------------
# Workflow Run
# ---------------------------------------------------------------------

class WorkflowRun:
    """
    Executes the steps of one workflow instance against a StepStore.
    """

    def __init__(
        self,
        instance_id: str,
        kind: str,
        store: StepStore,
        payload: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.instance_id = instance_id
        self.kind = kind
        self.payload = payload
        self._store = store
        self._sleep = sleep

    async def set_state(self, state: str, error: Optional[str] = None) -> None:
        await self._store.set_state(self.instance_id, self.kind, state, error, payload=self.payload)

    async def run_step(
        self,
        name: str,
        fn: Callable[[], Awaitable[Any]],
        retry: Optional[RetryPolicy] = None,
        state: Optional[str] = None,
    ) -> Any:
        """
        Return the committed result of step `name`, executing `fn` only if
        no result was committed yet.

        Parameters
        ----------
        name : str
            Step name, unique within the workflow.
        fn : Callable[[], Awaitable[Any]]
            Zero-argument coroutine factory performing the step's work.
        retry : Optional[RetryPolicy]
            Defaults to RetryPolicy() built from settings.
        state : Optional[str]
            Instance state recorded before the step executes.
        """
        committed = await self._store.get_step(self.instance_id, name)
        if committed is not None:
            logger.info("[%s] replaying committed step '%s'", self.instance_id, name)
            return committed.result

        if state is not None:
            await self.set_state(state)

        policy = retry or RetryPolicy()
        attempt = 1
        while True:
            try:
                result = await fn()
                break
            except policy.retryable as exc:
                if attempt >= policy.max_attempts:
                    logger.error(
                        "[%s] step '%s' failed after %d attempt(s): %s",
                        self.instance_id,
                        name,
                        attempt,
                        exc,
                    )
                    raise
                delay = policy.delay_for(attempt)
                logger.warning(
                    "[%s] step '%s' attempt %d failed (%s), retrying in %.1fs",
                    self.instance_id,
                    name,
                    attempt,
                    exc,
                    delay,
                )
                attempt += 1
                await self._sleep(delay)

        await self._store.commit_step(self.instance_id, name, result)
        return result
