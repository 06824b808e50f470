#!/usr/bin/env python3
"""
Unit tests for configuration loading
"""

import os
import tempfile
import unittest
from decimal import Decimal

import yaml

from parkwise.domain.exceptions import InvalidInputError
from parkwise.domain.models import BillingType, VehicleType
from parkwise.infrastructure.config import AppConfig, load_config


class ConfigTestBase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def write_yaml(self, data, name="parkwise.yaml"):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, "w", encoding="utf-8") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                yaml.safe_dump(data, f)
        return path


class TestDefaults(ConfigTestBase):

    def test_defaults_without_file_or_environment(self):
        config = load_config(environ={})
        self.assertEqual(config.database_url, "sqlite:///parkwise.db")
        self.assertEqual(config.messaging.broker, "memory")
        self.assertEqual(config.logging.level, "INFO")

        billing = config.billing_config()
        self.assertEqual(billing.currency, "INR")
        self.assertEqual(billing.day_pass_rate, Decimal('150'))
        self.assertEqual([b.rate for b in billing.hourly_rates], [Decimal('50'), Decimal('100'), Decimal('150'), Decimal('200')])
        self.assertTrue(config.billing.cap_overflow)

        thresholds = config.overstay_thresholds()
        self.assertEqual(len(thresholds), 8)
        self.assertEqual(config.overstay.lost_revenue_per_hour, Decimal('50'))

    def test_model_defaults_match_loader(self):
        self.assertEqual(AppConfig().model_dump(), load_config(environ={}).model_dump())


class TestYamlAndEnvironment(ConfigTestBase):

    def test_yaml_values(self):
        path = self.write_yaml({
            "database_url": "sqlite://",
            "billing": {
                "currency": "USD",
                "day_pass_rate": 20,
                "cap_overflow": False,
                "hourly_rates": [
                    {"min_hours": 0, "max_hours": 2, "rate": 5},
                    {"min_hours": 2, "max_hours": 10, "rate": 12},
                ],
            },
            "overstay": {
                "lost_revenue_per_hour": 4,
                "thresholds": [
                    {"vehicle_type": "CAR", "billing_type": "HOURLY",
                     "warning_hours": 2, "alert_hours": 3, "critical_hours": 4},
                ],
            },
        })
        config = load_config(path, environ={})

        billing = config.billing_config()
        self.assertEqual(billing.currency, "USD")
        self.assertEqual(billing.max_hours, 10)
        self.assertFalse(config.billing.cap_overflow)

        thresholds = config.overstay_thresholds()
        self.assertEqual(len(thresholds), 1)
        self.assertEqual(thresholds[0].vehicle_type, VehicleType.CAR)
        self.assertEqual(thresholds[0].billing_type, BillingType.HOURLY)

    def test_environment_overrides_file(self):
        path = self.write_yaml({"database_url": "sqlite:///from-file.db", "logging": {"level": "WARNING"}})
        config = load_config(path, environ={
            "PARKWISE_DATABASE_URL": "sqlite://",
            "PARKWISE_LOG_LEVEL": "debug",
            "PARKWISE_BROKER": "redis",
            "PARKWISE_REDIS_URL": "redis://cache:6379/1",
        })
        self.assertEqual(config.database_url, "sqlite://")
        self.assertEqual(config.logging.level, "DEBUG")
        self.assertEqual(config.messaging.broker, "redis")
        self.assertEqual(config.messaging.redis_url, "redis://cache:6379/1")

    def test_config_path_from_environment(self):
        path = self.write_yaml({"echo_sql": True})
        config = load_config(environ={"PARKWISE_CONFIG": path})
        self.assertTrue(config.echo_sql)

    def test_empty_file_gives_defaults(self):
        path = self.write_yaml("")
        self.assertEqual(load_config(path, environ={}).database_url, "sqlite:///parkwise.db")


class TestInvalidConfig(ConfigTestBase):

    def test_missing_file(self):
        with self.assertRaises(InvalidInputError):
            load_config(os.path.join(self.tmpdir.name, "missing.yaml"), environ={})

    def test_file_must_hold_a_mapping(self):
        path = self.write_yaml("- just\n- a list\n")
        with self.assertRaises(InvalidInputError):
            load_config(path, environ={})

    def test_malformed_yaml(self):
        path = self.write_yaml("billing: [unclosed\n  day_pass_rate: : 3\n")
        with self.assertRaises(InvalidInputError) as ctx:
            load_config(path, environ={})
        self.assertEqual(ctx.exception.details["path"], path)

    def test_rejected_values(self):
        invalid = {
            "unknown key": {"database": "sqlite://"},
            "unknown broker": {"messaging": {"broker": "kafka"}},
            "bad log level": {"logging": {"level": "LOUD"}},
            "negative day pass": {"billing": {"day_pass_rate": -1}},
            "band gap": {"billing": {"hourly_rates": [
                {"min_hours": 0, "max_hours": 1, "rate": 50},
                {"min_hours": 2, "max_hours": 4, "rate": 80},
            ]}},
            "tier order": {"overstay": {"thresholds": [
                {"vehicle_type": "CAR", "billing_type": "HOURLY",
                 "warning_hours": 5, "alert_hours": 3, "critical_hours": 8},
            ]}},
            "unknown vehicle type": {"overstay": {"thresholds": [
                {"vehicle_type": "TRUCK", "billing_type": "HOURLY",
                 "warning_hours": 1, "alert_hours": 2, "critical_hours": 3},
            ]}},
        }
        for reason, data in invalid.items():
            with self.subTest(reason=reason):
                path = self.write_yaml(data, name="invalid.yaml")
                with self.assertRaises(InvalidInputError):
                    load_config(path, environ={})


if __name__ == '__main__':
    unittest.main()
