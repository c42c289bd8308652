import socket
import time
from collections.abc import Callable

from loguru import logger

from imbue.machine.errors import BackendUnavailableError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.polling import PollPolicy
from imbue.machine.utils.polling import wait_for


def is_ssh_banner_reachable(hostname: str, port: int, timeout_seconds: float = 2.0) -> bool:
    """Whether an SSH server answers with its banner on hostname:port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.settimeout(timeout_seconds)
        sock.connect((hostname, port))
        banner = sock.recv(256)
        return banner.startswith(b"SSH-")
    except OSError:
        return False
    finally:
        sock.close()


def wait_for_ssh(
    runner: CommandRunnerInterface,
    policy: PollPolicy,
    sleep: Callable[[float], None] = time.sleep,
    deadline: Deadline | None = None,
) -> None:
    """Wait until the remote shell accepts a trivial command.

    Raises OperationTimeoutError if the shell is still unusable once the poll budget is spent.
    """

    def _is_shell_ready() -> bool:
        try:
            return runner.run("exit 0", timeout_seconds=30).success
        except (BackendUnavailableError, TimeoutError) as e:
            logger.trace("Remote shell not ready yet: {}", e)
            return False

    wait_for(_is_shell_ready, policy, sleep, deadline, error_message="Remote shell did not become available")
