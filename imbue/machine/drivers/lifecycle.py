"""Lifecycle helpers shared by drivers.

Drivers call these explicitly from their own methods; there is no base class that
supplies them implicitly.
"""

import time
from collections.abc import Callable

from loguru import logger

from imbue.machine.config.data_types import PollSettings
from imbue.machine.errors import HostInErrorStateError
from imbue.machine.errors import OperationTimeoutError
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import HostState
from imbue.machine.utils.model_base import pure
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.polling import PollPolicy
from imbue.machine.utils.polling import poll_until


@pure
def restart_policy(settings: PollSettings) -> PollPolicy:
    return PollPolicy(interval_seconds=settings.restart_interval_seconds, max_attempts=settings.restart_attempts)


@pure
def state_policy(settings: PollSettings) -> PollPolicy:
    return PollPolicy(interval_seconds=settings.state_interval_seconds, max_attempts=settings.state_attempts)


def _has_stopped(driver: DriverInterface, operation: str) -> bool:
    state = driver.get_state()
    if state == HostState.ERROR:
        raise HostInErrorStateError(str(driver.machine_name), operation)
    return state == HostState.STOPPED


def restart_with_fallback(
    driver: DriverInterface,
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Deadline | None = None,
) -> None:
    """Restart a host: graceful stop, bounded wait, forced power-off if the stop stalls, then start.

    The state is polled up to policy.max_attempts times until it reads STOPPED. A host
    still RUNNING (or STOPPING) after that budget is killed exactly once before being
    started again. ERROR at any point aborts the restart with HostInErrorStateError.
    """
    name = driver.machine_name
    driver.stop()

    has_stopped = poll_until(
        lambda: _has_stopped(driver, "restart"),
        policy,
        sleep,
        deadline,
        operation=f"restart of {name}",
    )
    if not has_stopped:
        if deadline is not None:
            deadline.check(f"restart of {name}")
        if driver.get_state() in (HostState.RUNNING, HostState.STOPPING):
            logger.warning(
                "Host {} has not stopped after {} state polls; forcing power-off",
                name,
                policy.max_attempts,
            )
            driver.kill()

    driver.start()


def wait_for_state(
    driver: DriverInterface,
    target: HostState,
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Deadline | None = None,
) -> None:
    """Poll the driver until it reports target.

    Raises HostInErrorStateError if the host enters ERROR (unless ERROR is the target)
    and OperationTimeoutError once the budget is spent.
    """

    def _has_reached_target() -> bool:
        state = driver.get_state()
        if state == HostState.ERROR and target != HostState.ERROR:
            raise HostInErrorStateError(str(driver.machine_name), f"wait for {target}")
        return state == target

    operation = f"wait for {driver.machine_name} to reach {target}"
    if not poll_until(_has_reached_target, policy, sleep, deadline, operation=operation):
        raise OperationTimeoutError(f"Host {driver.machine_name} did not reach {target} within the poll budget")
