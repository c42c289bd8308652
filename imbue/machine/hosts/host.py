import shutil
from pathlib import Path

from loguru import logger
from pydantic import ConfigDict
from pydantic import Field

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.config.data_types import EngineOptions
from imbue.machine.config.data_types import MachineContext
from imbue.machine.config.data_types import SwarmOptions
from imbue.machine.drivers.lifecycle import state_policy
from imbue.machine.drivers.lifecycle import wait_for_state
from imbue.machine.errors import HostNotRunningError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.interfaces.data_types import SSHCredentials
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.interfaces.provisioner import ProvisionerInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState
from imbue.machine.primitives import ProvisionerName
from imbue.machine.provision.detector import detect_provisioner
from imbue.machine.remote.ssh_wait import wait_for_ssh
from imbue.machine.utils.logging import log_span
from imbue.machine.utils.model_base import MutableModel
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.polling import PollPolicy

CERTS_DIRNAME = "certs"


class Host(MutableModel):
    """One named host: its driver plus the engine, swarm and certificate settings it is provisioned with.

    A Host is the single writer for its driver. `state` is only ever set from a live
    driver query, so it is a record of the last observation rather than a source of truth.
    """

    model_config = ConfigDict(frozen=False, extra="forbid", arbitrary_types_allowed=True)

    name: HostName = Field(frozen=True, description="Unique name of the host")
    driver: DriverInterface = Field(frozen=True, description="Driver that owns the host's backend resources")
    engine_options: EngineOptions = Field(default_factory=EngineOptions, frozen=True)
    swarm_options: SwarmOptions = Field(default_factory=SwarmOptions, frozen=True)
    server_cert_sans: tuple[str, ...] = Field(
        default=(),
        frozen=True,
        description="Extra subject alternative names for the host's server certificate",
    )
    state: HostState = Field(default=HostState.NONE, description="Last state read from the driver")
    provisioner_name: ProvisionerName | None = Field(
        default=None,
        description="Provisioner used by the last provisioning run",
    )

    @property
    def driver_name(self) -> DriverName:
        return self.driver.driver_name

    @property
    def store_path(self) -> Path:
        return self.driver.store_path

    def get_certs_dir(self) -> Path:
        return self.store_path / CERTS_DIRNAME

    def get_auth_options(self, provisioner: ProvisionerInterface) -> AuthOptions:
        return AuthOptions.for_host(self.get_certs_dir(), provisioner.get_docker_options_dir(), self.server_cert_sans)

    def refresh_state(self) -> HostState:
        self.state = self.driver.get_state()
        return self.state

    def get_ip(self) -> str:
        return self.driver.get_ip()

    def get_url(self) -> str:
        return self.driver.get_url()

    def get_ssh_credentials(self) -> SSHCredentials:
        return self.driver.get_ssh_credentials()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def wait_for_state(self, target: HostState, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        wait_for_state(self.driver, target, state_policy(ctx.config.polling), ctx.sleep, deadline)
        self.state = target

    def start(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        with log_span("Starting host {}", self.name, host=self.name):
            self.driver.start()
            self.wait_for_state(HostState.RUNNING, ctx, deadline)

    def stop(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        with log_span("Stopping host {}", self.name, host=self.name):
            self.driver.stop()
            self.wait_for_state(HostState.STOPPED, ctx, deadline)

    def kill(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        with log_span("Killing host {}", self.name, host=self.name):
            self.driver.kill()
            self.wait_for_state(HostState.STOPPED, ctx, deadline)

    def restart(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        with log_span("Restarting host {}", self.name, host=self.name):
            self.driver.restart(deadline)
            self.wait_for_state(HostState.RUNNING, ctx, deadline)

    def upgrade(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        with log_span("Upgrading host {}", self.name, host=self.name):
            self.driver.upgrade()
            self.refresh_state()

    def remove(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        """Delete the host's backend resources, then its local store.

        Works on hosts that were never fully created or provisioned.
        """
        with log_span("Removing host {}", self.name, host=self.name):
            self.driver.remove()
            self.state = HostState.NONE
            if self.store_path.exists():
                shutil.rmtree(self.store_path)
                logger.debug("Deleted local store {}", self.store_path)

    def create(self, ctx: MachineContext, deadline: Deadline | None = None) -> None:
        """Create the host, wait for it to boot and provision it.

        Nothing is rolled back on failure: a partially created host stays in place so
        it can be inspected or removed.
        """
        with log_span("Creating host {} with driver {}", self.name, self.driver_name, host=self.name):
            self.store_path.mkdir(parents=True, exist_ok=True)
            self.driver.pre_create_check()
            self.driver.create()
            self.wait_for_state(HostState.RUNNING, ctx, deadline)
            self.provision(ctx, deadline)
        ctx.pm.hook.on_host_created(host_name=self.name, driver_name=self.driver_name)

    def provision(
        self,
        ctx: MachineContext,
        deadline: Deadline | None = None,
        regenerate_certs: bool = False,
    ) -> None:
        """Detect the host's OS and run the matching provisioner's setup pipeline.

        Raises HostNotRunningError unless the host is RUNNING.
        """
        with log_span("Provisioning host {}", self.name, host=self.name):
            state = self.refresh_state()
            if state != HostState.RUNNING:
                raise HostNotRunningError(str(self.name), state)
            runner = self._open_shell(ctx, deadline)
            try:
                provisioner = detect_provisioner(self.driver, runner, ctx.provisioner_registry)
                provisioner.regenerate_certs = regenerate_certs
                self.provisioner_name = provisioner.name
                provisioner.provision(
                    self.swarm_options,
                    self.get_auth_options(provisioner),
                    self.engine_options,
                    deadline,
                )
            finally:
                runner.close()
        ctx.pm.hook.on_host_provisioned(host_name=self.name, provisioner_name=str(provisioner.name))

    def _open_shell(self, ctx: MachineContext, deadline: Deadline | None) -> CommandRunnerInterface:
        runner: CommandRunnerInterface = ctx.command_runner_factory(self.driver)
        settings = ctx.config.polling
        wait_for_ssh(
            runner,
            PollPolicy(interval_seconds=settings.ssh_interval_seconds, max_attempts=settings.ssh_attempts),
            ctx.sleep,
            deadline,
        )
        return runner
