"""
Sweeper: enumerate -> filter -> plan -> confirm -> delete -> report, once per provider.

Providers are processed one after the other and never share state. A
provider that cannot be reached is skipped with a warning and the next one
is processed as usual.
"""
import logging
from typing import Callable, Iterable, List, Optional, Sequence

from rich.console import Console

from .deleter import execute_plan
from .errors import AuthenticationMissing
from .gate import ConfirmationGate
from .models import (
    CleanupPlan,
    CloudResource,
    ProviderReport,
    ProviderStatus,
    RunConfig,
    RunReport,
)
from .planner import build_plan
from .policy import select_builder_instances, select_eligible
from .providers.base import ProviderClient
from .utils import is_auth_error, print_resource_table

logger = logging.getLogger(__name__)


class Sweeper:
    """
    Runs one cleanup pass across the given provider clients.

    With emergency=True only running or pending builder-owned instances
    are enumerated; images and snapshots are left alone.
    """

    def __init__(
        self,
        run_config: RunConfig,
        clients: Sequence[ProviderClient],
        gate: Optional[ConfirmationGate] = None,
        console: Optional[Console] = None,
        emergency: bool = False,
    ):
        self.run_config = run_config
        self.clients = list(clients)
        self.console = console or Console()
        self.gate = gate or ConfirmationGate(run_config, console=self.console)
        self.emergency = emergency

    def run(self) -> RunReport:
        report = RunReport(dry_run=self.run_config.dry_run)
        for client in self.clients:
            report.reports.append(self.sweep_provider(client))
        return report

    def _enumerate(self, client: ProviderClient) -> List[CloudResource]:
        if self.emergency:
            return select_builder_instances(client.list_builder_instances(), self.run_config)
        return select_eligible(client.list_resources(self.run_config.prefix), self.run_config)

    def plan_provider(self, client: ProviderClient) -> CleanupPlan:
        """Enumerate and plan without touching anything."""
        return build_plan(self._enumerate(client))

    def sweep_provider(self, client: ProviderClient) -> ProviderReport:
        name = client.display_name

        try:
            client.check_available()
        except AuthenticationMissing as e:
            logger.warning(f"{name} unavailable, skipping: {e}")
            return ProviderReport(client.provider, ProviderStatus.UNAVAILABLE, message=str(e))

        try:
            plan = self.plan_provider(client)
        except Exception as e:
            if is_auth_error(e):
                logger.warning(f"{name} unavailable, skipping: {e}")
                return ProviderReport(client.provider, ProviderStatus.UNAVAILABLE, message=str(e))
            logger.error(f"Failed to list {name} resources: {e}")
            return ProviderReport(client.provider, ProviderStatus.ENUMERATION_FAILED, message=str(e))

        what = "builder instances" if self.emergency else f"resources matching '{self.run_config.prefix}'"
        logger.info(f"Found {len(plan)} {name} {what}")

        if plan.is_empty():
            self.console.print(f"[green]✓[/green] No {name} {what} found")
            return ProviderReport(client.provider, ProviderStatus.COMPLETED, plan)

        print_resource_table(self.console, f"{name} resources to delete", plan)

        if self.run_config.dry_run:
            self.console.print(f"[blue]DRY RUN:[/blue] would delete the {len(plan)} {name} resource(s) listed above")
            return ProviderReport(client.provider, ProviderStatus.DRY_RUN, plan)

        if not self.gate.approve(client.provider, plan):
            self.console.print(f"[yellow]Skipped {name} batch[/yellow]")
            return ProviderReport(client.provider, ProviderStatus.DECLINED, plan,
                                  message="declined by operator")

        outcomes = execute_plan(client, plan)
        return ProviderReport(client.provider, ProviderStatus.COMPLETED, plan, outcomes)


def sweep(
    run_config: RunConfig,
    clients: Iterable[ProviderClient],
    prompt: Optional[Callable[[str], bool]] = None,
    console: Optional[Console] = None,
    emergency: bool = False,
) -> RunReport:
    """Convenience wrapper: build a gate around prompt and run a Sweeper."""
    console = console or Console()
    gate = ConfirmationGate(run_config, prompt=prompt, console=console)
    return Sweeper(run_config, list(clients), gate=gate, console=console, emergency=emergency).run()
