"""Use cases for supplier price lists, between the routes and storage."""

import logging

from errors import InvalidInputError
from schema import SupplierPriceRow, UpdateResult, ValidityWindow
from storage_strategy import StorageStrategy
from validation import (unwrap, validate_price_list_item,
                        validate_price_patch, validate_validity_window)

logger = logging.getLogger(__name__)


def _validate_batch(records: list, validator) -> list:
    """
    Run validator over every record, stopping at the first Err.

    Nothing is returned (and so nothing reaches storage) unless the whole
    batch is valid.
    """

    validated = []
    for index, record in enumerate(records):
        result = validator(record)
        if not result.ok:
            logger.warning('Rejected batch at record %d: %s', index,
                           result.error)
        validated.append(unwrap(result))
    return validated


class PriceListService:
    """Validates incoming batches and hands them to a StorageStrategy."""

    def __init__(self, storage_strategy: StorageStrategy):
        self.storage_strategy = storage_strategy

    def insert(self, raw_items) -> list[SupplierPriceRow]:
        """
        Validate and insert one item or a list of items.

        Raises:
            ValidationError: a record broke a rule (no row is written).
            PersistenceError: storage failed (no row is kept).
        """

        items = raw_items if isinstance(raw_items, list) else [raw_items]
        validated = _validate_batch(items, validate_price_list_item)
        return self.storage_strategy.insert_price_list(validated)

    def query(self, supplier_filter=None) -> list[SupplierPriceRow]:
        return self.storage_strategy.query_prices(supplier_filter)

    def update_prices(self,
                      raw_patches,
                      supplier_id: int | None = None) -> UpdateResult:
        """
        Build sparse patches and apply them.

        Only keys present in each raw patch are written; `id` is always
        coerced to an int. With a supplier_id, rows owned by other suppliers
        are left untouched.
        """

        if not isinstance(raw_patches, list):
            raise InvalidInputError('Los datos deben ser un array')
        patches = _validate_batch(raw_patches, validate_price_patch)
        return self.storage_strategy.update_prices(patches, supplier_id)

    def set_validity(self, raw_windows) -> list[ValidityWindow]:
        """Validate windows (start <= end) and upsert them by supplier."""

        if not isinstance(raw_windows, list):
            raise InvalidInputError('Los datos deben ser un array')
        windows = _validate_batch(raw_windows, validate_validity_window)
        return self.storage_strategy.upsert_validity(windows)
