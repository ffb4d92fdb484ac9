"""
Exposure and conversion counters.

Counts unique exposures and at most one conversion per visitor for each
variant. A visitor's conversion is credited only to the variant that visitor
was exposed to. Increments run under the store's per-experiment lock so
concurrent callers never lose updates.
"""

import logging
from typing import Optional

from .errors import NotFoundError
from .schema import ExperimentStatus
from .store import CONVERSION, EXPOSURE, ExperimentStore

logger = logging.getLogger(__name__)

# Late conversions are still accepted while paused.
ACCEPTING_STATUSES = (ExperimentStatus.RUNNING, ExperimentStatus.PAUSED)


class ConversionAggregator:
    """Records exposure and conversion events against a store."""

    def __init__(self, store: ExperimentStore):
        self.store = store

    def record_exposure(
        self,
        experiment_id: str,
        variant_id: str,
        visitor_id: Optional[str] = None,
    ) -> bool:
        """
        Count a visitor as exposed to a variant.

        With a visitor id, repeated exposures of the same visitor are ignored
        and the visitor is remembered as belonging to that variant.

        Returns:
            True if the counter was incremented

        Raises:
            NotFoundError: unknown experiment or variant
        """
        with self.store.locked(experiment_id) as (experiment, ledger):
            variant = experiment.variant(variant_id)
            if variant is None:
                raise NotFoundError("variant", variant_id)
            if experiment.status not in ACCEPTING_STATUSES:
                logger.warning(
                    f"Dropped exposure for {experiment_id}/{variant_id}: experiment is {experiment.status.value}"
                )
                return False
            if visitor_id is not None:
                if visitor_id in ledger.exposed:
                    logger.debug(f"Duplicate exposure for visitor {visitor_id} in {experiment_id}")
                    return False
                ledger.exposed[visitor_id] = variant_id
            variant.exposures += 1
            self.store.append_event(experiment_id, EXPOSURE, variant_id, visitor_id)
        return True

    def record_conversion(
        self,
        experiment_id: str,
        variant_id: str,
        visitor_id: Optional[str] = None,
    ) -> bool:
        """
        Count a conversion for a variant, at most once per visitor.

        With a visitor id, the visitor must have been exposed to this very
        variant; otherwise the event is dropped.

        Returns:
            True if the counter was incremented

        Raises:
            NotFoundError: unknown experiment or variant
        """
        with self.store.locked(experiment_id) as (experiment, ledger):
            variant = experiment.variant(variant_id)
            if variant is None:
                raise NotFoundError("variant", variant_id)
            if experiment.status not in ACCEPTING_STATUSES:
                logger.warning(
                    f"Dropped conversion for {experiment_id}/{variant_id}: experiment is {experiment.status.value}"
                )
                return False
            if visitor_id is not None:
                exposed_to = ledger.exposed.get(visitor_id)
                if exposed_to != variant_id:
                    logger.warning(
                        f"Dropped conversion for {experiment_id}/{variant_id}: visitor {visitor_id} "
                        f"was exposed to {exposed_to or 'no variant'}"
                    )
                    return False
                if visitor_id in ledger.converted:
                    logger.debug(f"Duplicate conversion for visitor {visitor_id} in {experiment_id}")
                    return False
                ledger.converted.add(visitor_id)
            variant.conversions += 1
            self.store.append_event(experiment_id, CONVERSION, variant_id, visitor_id)
        return True
