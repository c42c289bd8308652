"""Apply one lifecycle action to many hosts concurrently.

This is the only layer that turns per-host errors into an aggregate result instead of
propagating them. Every other layer raises.
"""

import functools
import threading
from collections.abc import Callable
from collections.abc import Sequence
from concurrent.futures import Future
from concurrent.futures import wait
from typing import assert_never

from loguru import logger

from imbue.machine.api.data_types import ActionResult
from imbue.machine.api.data_types import ErrorInfo
from imbue.machine.api.data_types import HostActionOutcome
from imbue.machine.config.data_types import MachineContext
from imbue.machine.errors import BaseMachineError
from imbue.machine.errors import OperationTimeoutError
from imbue.machine.hosts.host import Host
from imbue.machine.hosts.store import HostStoreInterface
from imbue.machine.primitives import HostName
from imbue.machine.primitives import LifecycleAction
from imbue.machine.utils.logging import log_call
from imbue.machine.utils.logging import log_span
from imbue.machine.utils.polling import Deadline


def _apply_action(
    host: Host,
    action: LifecycleAction,
    ctx: MachineContext,
    deadline: Deadline,
    regenerate_certs: bool,
) -> None:
    match action:
        case LifecycleAction.CREATE:
            host.create(ctx, deadline)
        case LifecycleAction.START:
            host.start(ctx, deadline)
        case LifecycleAction.STOP:
            host.stop(ctx, deadline)
        case LifecycleAction.RESTART:
            host.restart(ctx, deadline)
        case LifecycleAction.KILL:
            host.kill(ctx, deadline)
        case LifecycleAction.REMOVE:
            host.remove(ctx, deadline)
        case LifecycleAction.UPGRADE:
            host.upgrade(ctx, deadline)
        case LifecycleAction.PROVISION:
            host.provision(ctx, deadline, regenerate_certs=regenerate_certs)
        case _ as unreachable:
            assert_never(unreachable)


def _run_on_host(
    action: LifecycleAction,
    host_name: HostName,
    ctx: MachineContext,
    store: HostStoreInterface,
    deadline: Deadline,
    regenerate_certs: bool,
) -> HostActionOutcome:
    try:
        host = store.get_host(host_name)
        _apply_action(host, action, ctx, deadline, regenerate_certs)
    except (BaseMachineError, OSError) as e:
        logger.warning("{} failed on {}: {}", action.value.lower(), host_name, e)
        return _failed(host_name, e)
    except Exception as e:
        # Plugin-supplied backend clients raise their own exception types
        logger.exception("{} failed on {} with an unexpected error", action.value.lower(), host_name)
        return _failed(host_name, e)
    return HostActionOutcome(host_name=host_name, is_success=True)


def _failed(host_name: HostName, error: BaseException) -> HostActionOutcome:
    return HostActionOutcome(host_name=host_name, is_success=False, error=ErrorInfo.from_exception(error))


def _timed_out(action: LifecycleAction, host_name: HostName) -> HostActionOutcome:
    error = OperationTimeoutError(f"{action.value.lower()} of {host_name} did not finish before the action deadline")
    logger.warning("{}", error)
    return _failed(host_name, error)


def _submit_on_daemon_thread(
    slots: threading.BoundedSemaphore,
    thread_name: str,
    work: Callable[[], HostActionOutcome],
) -> Future[HostActionOutcome]:
    """Run work on its own daemon thread once a slot is free. The thread never holds up interpreter exit."""
    future: Future[HostActionOutcome] = Future()

    def _run() -> None:
        with slots:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(work())
            except BaseException as e:
                future.set_exception(e)

    threading.Thread(target=_run, name=thread_name, daemon=True).start()
    return future


def _collect(action: LifecycleAction, host_name: HostName, future: Future[HostActionOutcome]) -> HostActionOutcome:
    if not future.done():
        future.cancel()
        return _timed_out(action, host_name)
    error = future.exception()
    if error is not None:
        return _failed(host_name, error)
    return future.result()


@log_call
def run_action(
    action: LifecycleAction,
    host_names: Sequence[str],
    ctx: MachineContext,
    store: HostStoreInterface,
    timeout_seconds: float | None = None,
    regenerate_certs: bool = False,
) -> ActionResult:
    """Run action on every named host, at most config.max_parallel_hosts at a time.

    All hosts share one deadline (timeout_seconds, or config.action_timeout_seconds).
    Hosts whose operation has not finished when it passes are reported as timeouts;
    their daemon threads are abandoned, not interrupted. Operations still waiting for a
    slot are cancelled.
    """
    names = tuple(dict.fromkeys(HostName(name) for name in host_names))
    if not names:
        return ActionResult(action=action, outcomes=())

    deadline = Deadline.after(ctx.config.action_timeout_seconds if timeout_seconds is None else timeout_seconds)
    slots = threading.BoundedSemaphore(min(ctx.config.max_parallel_hosts, len(names)))

    with log_span("Running {} on {} host(s)", action.value.lower(), len(names)):
        futures: dict[HostName, Future[HostActionOutcome]] = {
            name: _submit_on_daemon_thread(
                slots,
                f"machine-{action.value.lower()}-{name}",
                functools.partial(_run_on_host, action, name, ctx, store, deadline, regenerate_certs),
            )
            for name in names
        }
        wait(futures.values(), timeout=deadline.remaining())
        outcomes = tuple(_collect(action, name, futures[name]) for name in names)

    result = ActionResult(action=action, outcomes=outcomes)
    logger.info(
        "{} finished: {} succeeded, {} failed",
        action.value.lower(),
        len(outcomes) - len(result.failures),
        len(result.failures),
    )
    return result


def create_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.CREATE, host_names, ctx, store)


def start_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.START, host_names, ctx, store)


def stop_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.STOP, host_names, ctx, store)


def restart_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.RESTART, host_names, ctx, store)


def kill_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.KILL, host_names, ctx, store)


def remove_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.REMOVE, host_names, ctx, store)


def upgrade_hosts(host_names: Sequence[str], ctx: MachineContext, store: HostStoreInterface) -> ActionResult:
    return run_action(LifecycleAction.UPGRADE, host_names, ctx, store)


def provision_hosts(
    host_names: Sequence[str],
    ctx: MachineContext,
    store: HostStoreInterface,
    regenerate_certs: bool = False,
) -> ActionResult:
    return run_action(LifecycleAction.PROVISION, host_names, ctx, store, regenerate_certs=regenerate_certs)
