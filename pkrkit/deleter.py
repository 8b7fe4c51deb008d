"""
Deleter: one delete call per planned resource, failures recorded, batch never stops.
"""
import logging
from typing import List

from .errors import DeleteFailure
from .models import CleanupPlan, DeleteOutcome
from .providers.base import ProviderClient
from .utils import classify_error

logger = logging.getLogger(__name__)


def execute_plan(client: ProviderClient, plan: CleanupPlan) -> List[DeleteOutcome]:
    """
    Delete every resource of the plan in order.

    A snapshot whose image failed to delete is still attempted: leaving it
    behind would keep billing for storage nobody tracks anymore.
    """
    outcomes: List[DeleteOutcome] = []

    for resource in plan:
        try:
            client.delete(resource)
        except DeleteFailure as e:
            logger.warning(f"{e} ({e.error_kind})")
            outcomes.append(DeleteOutcome(resource, False, e.error_kind, str(e)))
            continue
        except Exception as e:
            error_kind = classify_error(e)
            logger.warning(f"Failed to delete {resource.kind.value} {resource.label} ({error_kind}): {e}")
            outcomes.append(DeleteOutcome(resource, False, error_kind, str(e)))
            continue

        logger.info(f"Deleted {resource.provider.value} {resource.kind.value} {resource.label}")
        outcomes.append(DeleteOutcome(resource, True))

    return outcomes
