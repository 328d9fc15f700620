"""Tests for price_list_service.py."""

import unittest
from unittest.mock import MagicMock

from errors import InvalidInputError, PersistenceError, ValidationError
from price_list_service import PriceListService
from schema import PriceListItem, UpdatePriceListItem, ValidityWindow
from storage_strategy import NO_DATA_MESSAGE, InMemoryStorageStrategy


class PriceListServiceTests(unittest.TestCase):
    """Tests for PriceListService with a mocked storage strategy"""

    def setUp(self):
        self.storage = MagicMock()
        self.service = PriceListService(self.storage)

    def test_insert_validates_then_calls_storage(self):
        self.service.insert([{
            'supplier_code': ' AB12 ',
            'unit_cost': '1,000',
            'supplier_id': 7
        }])

        args, _ = self.storage.insert_price_list.call_args
        self.assertEqual(
            args, ([PriceListItem(supplier_code='AB12',
                                  unit_cost=1000.0,
                                  supplier_id=7)], ))

    def test_insert_wraps_single_item_in_list(self):
        self.service.insert({'supplier_code': 'AB12'})

        args, _ = self.storage.insert_price_list.call_args
        self.assertEqual(args, ([PriceListItem(supplier_code='AB12')], ))

    def test_insert_rejects_batch_before_storage(self):
        with self.assertRaises(ValidationError) as context:
            self.service.insert([{
                'supplier_code': 'AB12'
            }, {
                'supplier_code': 'AB12',
                'discount1': 101
            }, {
                'supplier_code': 'CD34'
            }])

        self.assertEqual(context.exception.field, 'discount1')
        self.storage.insert_price_list.assert_not_called()

    def test_insert_propagates_persistence_error(self):
        self.storage.insert_price_list.side_effect = PersistenceError('boom')

        with self.assertRaises(PersistenceError):
            self.service.insert([{'supplier_code': 'AB12'}])

    def test_query_passes_filter_through(self):
        self.storage.query_prices.return_value = ['row']

        res = self.service.query('7')

        self.assertEqual(res, ['row'])
        self.storage.query_prices.assert_called_once_with('7')

    def test_update_prices_builds_sparse_patches(self):
        self.service.update_prices([{
            'id': '7',
            'unit_cost': 99
        }, {
            'id': 8,
            'discount1': None,
            'discount2': '3'
        }])

        args, _ = self.storage.update_prices.call_args
        self.assertEqual(args, ([
            UpdatePriceListItem(id=7,
                                unit_cost=99.0,
                                fields=frozenset({'unit_cost'})),
            UpdatePriceListItem(id=8,
                                discount1=None,
                                discount2=3,
                                fields=frozenset({'discount1', 'discount2'}))
        ], None))

    def test_update_prices_rejects_non_list(self):
        with self.assertRaises(InvalidInputError):
            self.service.update_prices({'id': 7})

        self.storage.update_prices.assert_not_called()

    def test_update_prices_rejects_bad_discount_before_storage(self):
        with self.assertRaises(ValidationError):
            self.service.update_prices([{'id': 7, 'discount1': '10.5'}])

        self.storage.update_prices.assert_not_called()

    def test_set_validity_validates_windows(self):
        self.service.set_validity([{
            'id': 1,
            'supplier_id': 100,
            'start_date': '2024-01-01',
            'end_date': '2024-12-31'
        }])

        args, _ = self.storage.upsert_validity.call_args
        self.assertEqual(args, ([
            ValidityWindow(id=1,
                           supplier_id=100,
                           start_date='2024-01-01',
                           end_date='2024-12-31')
        ], ))

    def test_set_validity_rejects_inverted_range_before_storage(self):
        with self.assertRaises(ValidationError):
            self.service.set_validity([{
                'id': 1,
                'supplier_id': 100,
                'start_date': '2024-06-01',
                'end_date': '2024-01-01'
            }])

        self.storage.upsert_validity.assert_not_called()

    def test_set_validity_rejects_non_list(self):
        with self.assertRaises(InvalidInputError):
            self.service.set_validity({'id': 1})


class PriceListServiceStorageTests(unittest.TestCase):
    """Tests for PriceListService against the in-memory strategy"""

    def setUp(self):
        self.storage = InMemoryStorageStrategy()
        self.service = PriceListService(self.storage)

    def test_insert_then_query(self):
        self.service.insert([{
            'supplier_code': 'AB12',
            'unit_cost': '100.50',
            'discount1': 10,
            'discount2': 5,
            'supplier_id': 7
        }])

        rows = self.service.query(7)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].supplier_code, 'AB12')
        self.assertEqual(rows[0].unit_cost, 100.5)
        self.assertEqual(rows[0].discount1, 10)
        self.assertEqual(rows[0].discount2, 5)

    def test_invalid_second_item_leaves_no_rows(self):
        with self.assertRaises(ValidationError):
            self.service.insert([{
                'supplier_code': 'AB12',
                'supplier_id': 7
            }, {
                'supplier_code': 'AB 12',
                'supplier_id': 7
            }, {
                'supplier_code': 'CD34',
                'supplier_id': 7
            }])

        self.assertEqual(self.service.query(7), [])

    def test_update_with_id_only_changes_nothing(self):
        row, = self.service.insert([{'supplier_code': 'AB12', 'unit_cost': 1}])

        result = self.service.update_prices([{'id': row.id}])

        self.assertEqual(result.updated_count, 0)

    def test_update_with_empty_batch(self):
        result = self.service.update_prices([])

        self.assertEqual(result.updated_count, 0)
        self.assertEqual(result.message, NO_DATA_MESSAGE)

    def test_set_validity_twice_keeps_latest(self):
        window = {
            'id': 1,
            'supplier_id': 100,
            'start_date': '2024-01-01',
            'end_date': '2024-12-31'
        }
        self.service.set_validity([window])
        self.service.set_validity([{**window, 'end_date': '2025-03-31'}])

        self.assertEqual(list(self.storage.validity_table), [100])
        self.assertEqual(self.storage.validity_table[100].end_date,
                         '2025-03-31')


if __name__ == '__main__':
    unittest.main()
