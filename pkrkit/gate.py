"""
Confirmation gate: asks the operator before each provider's batch is deleted.
"""
import logging
from typing import Callable, Optional

from rich.console import Console
from rich.prompt import Confirm

from .models import CleanupPlan, Provider, RunConfig

logger = logging.getLogger(__name__)

PromptFn = Callable[[str], bool]


class ConfirmationGate:
    """
    Decides whether a provider's batch may run.

    Dry runs never delete. force_confirm approves without asking. Otherwise
    the prompt blocks until the operator answers; a negative answer, EOF or
    Ctrl-C declines only the batch being asked about.
    """

    def __init__(self, run_config: RunConfig, prompt: Optional[PromptFn] = None,
                 console: Optional[Console] = None):
        self.run_config = run_config
        self.console = console or Console()
        self._prompt = prompt or self._rich_prompt

    def _rich_prompt(self, message: str) -> bool:
        return Confirm.ask(message, default=False, console=self.console)

    def approve(self, provider: Provider, plan: CleanupPlan) -> bool:
        if self.run_config.dry_run:
            return False
        if plan.is_empty() or self.run_config.force_confirm:
            return True

        summary = ", ".join(f"{count} {kind.value}(s)" for kind, count in plan.count_by_kind().items())
        message = f"Delete {summary} from {provider.value.upper()}?"
        try:
            approved = self._prompt(message)
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            approved = False

        if not approved:
            logger.warning(f"{provider.value.upper()} batch declined by operator")
        return approved
