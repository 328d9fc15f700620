"""Tests for config.py."""

import logging
import unittest
from unittest.mock import patch
import os

from config import DEFAULT_PORT, DEFAULT_STATEMENT_TIMEOUT_MS, load_settings


class ConfigTests(unittest.TestCase):
    """Tests for load_settings"""

    @patch.dict(os.environ, clear=True)
    def test_defaults(self):
        settings = load_settings()

        self.assertIsNone(settings.database_url)
        self.assertIsNone(settings.jwt_secret)
        self.assertEqual(settings.port, DEFAULT_PORT)
        self.assertEqual(settings.statement_timeout_ms,
                         DEFAULT_STATEMENT_TIMEOUT_MS)
        self.assertEqual(settings.supplier_credentials, ())
        self.assertEqual(settings.log_level, logging.INFO)

    @patch.dict(
        os.environ, {
            'DATABASE_URL': 'sqlite:///:memory:',
            'JWT_SECRET': 'x' * 32,
            'PORT': '8080',
            'LOG_LEVEL': 'debug',
            'SUPPLIER_CREDENTIALS': '[{"id": 7, "username": "900123"}]'
        },
        clear=True)
    def test_values_from_environment(self):
        settings = load_settings()

        self.assertEqual(settings.database_url, 'sqlite:///:memory:')
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.log_level, logging.DEBUG)
        self.assertEqual(settings.supplier_credentials, ({
            'id': 7,
            'username': '900123'
        }, ))

    @patch.dict(os.environ, {'PORT': 'abc'}, clear=True)
    def test_rejects_non_integer(self):
        with self.assertRaises(ValueError):
            load_settings()

    @patch.dict(os.environ, {'SUPPLIER_CREDENTIALS': '{"id": 7}'}, clear=True)
    def test_rejects_credentials_that_are_not_a_list(self):
        with self.assertRaises(ValueError):
            load_settings()


if __name__ == '__main__':
    unittest.main()
