"""The provisioning pipeline steps shared by every provisioner variant."""

import re
from collections.abc import Callable
from collections.abc import Sequence
from typing import Final

from loguru import logger

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.errors import BaseMachineError
from imbue.machine.errors import ProvisioningStepFailedError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.primitives import PackageAction
from imbue.machine.primitives import ProvisioningStep
from imbue.machine.primitives import ServiceAction
from imbue.machine.provision.daemon_config import write_daemon_config
from imbue.machine.provision.engine_config import EngineConfigContext
from imbue.machine.provision.swarm import configure_swarm
from imbue.machine.tls.bootstrap import bootstrap_tls
from imbue.machine.utils.logging import log_span
from imbue.machine.utils.model_base import pure
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.polling import PollPolicy
from imbue.machine.utils.polling import wait_for
from imbue.machine.utils.shell import quote

ALL_STEPS: Final[tuple[ProvisioningStep, ...]] = tuple(ProvisioningStep)

# Immutable images ship the engine and cannot install packages
IMMUTABLE_IMAGE_STEPS: Final[tuple[ProvisioningStep, ...]] = tuple(
    step
    for step in ProvisioningStep
    if step not in (ProvisioningStep.INSTALL_PACKAGES, ProvisioningStep.INSTALL_ENGINE)
)

ENGINE_SERVICE: Final[str] = "docker"

StepAction = Callable[[], None]


@pure
def build_install_engine_command(install_url: str) -> str:
    return f"if ! command -v docker >/dev/null 2>&1; then curl -fsSL {quote(install_url)} | sudo sh; fi"


@pure
def build_firewall_command(port: int) -> str:
    """An iptables allow rule for the engine port, appended only when not already present."""
    rule = f"INPUT -p tcp --dport {port} -j ACCEPT"
    return f"sudo iptables -w -C {rule} 2>/dev/null || sudo iptables -w -A {rule}"


@pure
def build_engine_listening_probe() -> str:
    return "sudo ss -tln 2>/dev/null || sudo netstat -tln"


@pure
def is_port_listed(probe_output: str, port: int) -> bool:
    return re.search(rf":{port}\s", probe_output) is not None


def wait_for_engine_listening(
    runner: CommandRunnerInterface,
    port: int,
    policy: PollPolicy,
    sleep: Callable[[float], None],
    deadline: Deadline | None = None,
) -> None:
    def _is_listening() -> bool:
        result = runner.run(build_engine_listening_probe())
        return result.success and is_port_listed(result.stdout, port)

    wait_for(
        _is_listening,
        policy,
        sleep,
        deadline,
        error_message=f"Engine daemon is not listening on port {port}",
    )


def run_provisioning_steps(
    steps: Sequence[tuple[ProvisioningStep, StepAction]],
    host_name: str,
    deadline: Deadline | None = None,
) -> None:
    """Run steps in order, stopping at the first failure.

    A failing step raises ProvisioningStepFailedError carrying the step and the
    original error; later steps are not run.
    """
    for step, action in steps:
        if deadline is not None:
            deadline.check(f"provisioning of {host_name}")
        with log_span("Provisioning step {} on {}", step, host_name, host=host_name):
            try:
                action()
            except (BaseMachineError, OSError, ValueError) as e:
                logger.error("Provisioning step {} failed on {}: {}", step, host_name, e)
                raise ProvisioningStepFailedError(step, e) from e


class GenericProvisioningSteps:
    """The step implementations, bound to one provisioner and one provisioning run."""

    def __init__(
        self,
        provisioner: ProvisionerInterface,
        swarm_options: SwarmOptions,
        auth_options: AuthOptions,
        engine_options: EngineOptions,
        packages: Sequence[str] = (),
        engine_package: str | None = None,
        regenerate_certs: bool = False,
        deadline: Deadline | None = None,
    ) -> None:
        self.provisioner = provisioner
        self.swarm_options = swarm_options
        self.auth_options = auth_options
        self.engine_options = engine_options
        self.packages = tuple(packages)
        self.engine_package = engine_package
        self.regenerate_certs = regenerate_certs
        self.deadline = deadline

    @property
    def runner(self) -> CommandRunnerInterface:
        return self.provisioner.runner

    @property
    def engine_port(self) -> int:
        return self.provisioner.driver.engine_port

    @property
    def host_name(self) -> str:
        return str(self.provisioner.driver.machine_name)

    def set_hostname(self) -> None:
        self.provisioner.set_hostname(self.host_name)

    def install_packages(self) -> None:
        for package in self.packages:
            self.provisioner.package(package, PackageAction.INSTALL)

    def install_engine(self) -> None:
        if self.engine_package is not None:
            self.provisioner.package(self.engine_package, PackageAction.INSTALL)
        else:
            self.runner.run_checked(build_install_engine_command(self.engine_options.install_url))
        self.provisioner.service(ENGINE_SERVICE, ServiceAction.ENABLE)

    def make_options_dir(self) -> None:
        self.runner.run_checked(f"sudo mkdir -p {quote(str(self.provisioner.get_docker_options_dir()))}")

    def bootstrap_tls(self) -> None:
        bootstrap_tls(
            self.runner,
            self.auth_options,
            self.host_name,
            self.provisioner.driver.get_ip(),
            regenerate=self.regenerate_certs,
        )

    def configure_auth(self) -> None:
        context = EngineConfigContext(
            engine_port=self.engine_port,
            auth_options=self.auth_options,
            engine_options=self.engine_options,
            docker_options_dir=self.provisioner.get_docker_options_dir(),
            driver_name=str(self.provisioner.driver.driver_name),
        )
        write_daemon_config(self.runner, self.provisioner.generate_docker_options(context))
        self.provisioner.service(ENGINE_SERVICE, ServiceAction.RESTART)

        settings = self.provisioner.driver.poll_settings
        wait_for_engine_listening(
            self.runner,
            self.engine_port,
            PollPolicy(interval_seconds=settings.engine_interval_seconds, max_attempts=settings.engine_attempts),
            self.provisioner.driver.sleep,
            self.deadline,
        )

    def configure_swarm(self) -> None:
        configure_swarm(
            self.runner,
            self.swarm_options,
            self.auth_options,
            self.provisioner.get_docker_options_dir(),
            self.provisioner.driver.get_ip() if self.swarm_options.is_swarm else "",
            self.engine_port,
        )

    def open_firewall(self) -> None:
        self.runner.run_checked(build_firewall_command(self.engine_port))

    def get_step_actions(self, steps: Sequence[ProvisioningStep]) -> list[tuple[ProvisioningStep, StepAction]]:
        actions: dict[ProvisioningStep, StepAction] = {
            ProvisioningStep.SET_HOSTNAME: self.set_hostname,
            ProvisioningStep.INSTALL_PACKAGES: self.install_packages,
            ProvisioningStep.INSTALL_ENGINE: self.install_engine,
            ProvisioningStep.MAKE_OPTIONS_DIR: self.make_options_dir,
            ProvisioningStep.BOOTSTRAP_TLS: self.bootstrap_tls,
            ProvisioningStep.CONFIGURE_AUTH: self.configure_auth,
            ProvisioningStep.CONFIGURE_SWARM: self.configure_swarm,
            ProvisioningStep.OPEN_FIREWALL: self.open_firewall,
        }
        return [(step, actions[step]) for step in steps]

    def run(self, steps: Sequence[ProvisioningStep]) -> None:
        run_provisioning_steps(self.get_step_actions(steps), self.host_name, self.deadline)
