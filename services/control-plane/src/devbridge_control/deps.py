"""Dependency injection for the control plane."""

from devbridge_control.config import settings
from devbridge_control.orchestrator import TunnelOrchestrator
from devbridge_control.provisioning import DockerResourceRegistry, ResourceProvisioner
from devbridge_control.rpc import DeviceHub


class ControlPlaneSingleton:
    """Singleton holder for process-wide control plane components."""

    _hub: DeviceHub | None = None
    _registry: DockerResourceRegistry | None = None
    _provisioner: ResourceProvisioner | None = None
    _orchestrator: TunnelOrchestrator | None = None

    @classmethod
    def get_hub(cls) -> DeviceHub:
        if cls._hub is None:
            cls._hub = DeviceHub(settings.device_keys, rpc_timeout=settings.rpc_timeout)
        return cls._hub

    @classmethod
    def get_registry(cls) -> DockerResourceRegistry:
        if cls._registry is None:
            cls._registry = DockerResourceRegistry(settings)
        return cls._registry

    @classmethod
    def get_provisioner(cls) -> ResourceProvisioner:
        if cls._provisioner is None:
            cls._provisioner = ResourceProvisioner(
                cls.get_registry(),
                port=settings.container_port,
                cpu_count=settings.container_cpu_count,
                memory=settings.container_memory,
                deadline=settings.provision_timeout,
            )
        return cls._provisioner

    @classmethod
    def get_orchestrator(cls) -> TunnelOrchestrator:
        if cls._orchestrator is None:
            cls._orchestrator = TunnelOrchestrator(
                invoker=cls.get_hub(),
                provisioner=cls.get_provisioner(),
                settings=settings,
            )
        return cls._orchestrator

    @classmethod
    def clear_instance(cls) -> None:
        cls._hub = None
        cls._registry = None
        cls._provisioner = None
        cls._orchestrator = None


def get_hub() -> DeviceHub:
    return ControlPlaneSingleton.get_hub()


def get_provisioner() -> ResourceProvisioner:
    return ControlPlaneSingleton.get_provisioner()


def get_orchestrator() -> TunnelOrchestrator:
    return ControlPlaneSingleton.get_orchestrator()


async def cleanup_registry() -> None:
    """Release the container platform session."""
    registry = ControlPlaneSingleton._registry
    if registry is not None:
        await registry.close()
