"""
Test suite for the per-asset state transition models.

This test suite validates:
- HVAC thermostat behaviour and comfort-limit dropout
- Battery reserve protection
- EV deadline override and departure
- Fleet site power sharing
- C&I fatigue dropout and process toggle rules
- Command handling (inapplicable, noncompliant, dropped assets)
"""

import sys
from dataclasses import replace
from pathlib import Path
import math
import unittest
import numpy as np

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from vppsim.models import (
    BatteryCommand, CiBuildingCommand, EvCommand, FleetCommand, HvacCommand,
    StepStatus, estimate_capacity, estimate_drop_risk, update_asset,
)
from vppsim.models.base import ExogenousInputs, round_half_up
from vppsim.models.fleet import allocate_site_power

from asset_factories import (
    make_battery, make_ci, make_ev, make_fleet, make_hvac, quiet_inputs,
)


class TestHvacModel(unittest.TestCase):
    """Residential HVAC transitions."""

    def setUp(self):
        self.rng = np.random.RandomState(7)

    def test_thermostat_turns_on_above_deadband(self):
        asset = make_hvac(tin_f=75.0, alpha=0.0, beta=-1.0, hvac_on=False)
        step = update_asset(asset, None, quiet_inputs(), self.rng)

        self.assertEqual(step.status, StepStatus.NO_COMMAND)
        self.assertTrue(step.asset.state.hvac_on)
        self.assertAlmostEqual(step.power_delta_kw, 0.0)

    def test_setpoint_shift_keeps_compressor_off(self):
        asset = make_hvac(tin_f=75.0, alpha=0.0, beta=-1.0, hvac_on=False)
        step = update_asset(asset, HvacCommand(delta_setpoint_f=2.0), quiet_inputs(), self.rng)

        self.assertEqual(step.status, StepStatus.APPLIED)
        self.assertFalse(step.asset.state.hvac_on)
        self.assertEqual(step.asset.state.setpoint_f, 76.0)
        self.assertAlmostEqual(step.power_delta_kw, 3.5)

    def test_noncompliant_command_keeps_prior_setpoint(self):
        asset = make_hvac(tin_f=75.0, alpha=0.0, beta=-1.0, hvac_on=False)
        inputs = quiet_inputs(noncompliance_probability=1.0)
        step = update_asset(asset, HvacCommand(delta_setpoint_f=2.0), inputs, self.rng)

        self.assertEqual(step.status, StepStatus.NOT_COMPLIED)
        self.assertEqual(step.asset.state.setpoint_f, 74.0)
        self.assertTrue(step.asset.state.hvac_on)
        self.assertAlmostEqual(step.power_delta_kw, 0.0)

    def test_comfort_violation_drops_on_predicted_tick(self):
        # With beta = 0 the compressor has no thermal effect, so the indoor
        # temperature follows the envelope equation alone.
        alpha, outdoor, tin, comfort_max = 0.02, 100.0, 74.0, 78.0
        expected_drop_tick = None
        predicted = tin
        for tick in range(200):
            predicted = predicted + alpha * (outdoor - predicted)
            if predicted > comfort_max:
                expected_drop_tick = tick
                break
        self.assertIsNotNone(expected_drop_tick)

        asset = make_hvac(tin_f=tin, alpha=alpha, beta=0.0, comfort_max_f=comfort_max)
        drop_tick = None
        for tick in range(200):
            step = update_asset(asset, None, quiet_inputs(tick=tick, outdoor_temp_f=outdoor), self.rng)
            asset = step.asset
            if step.status == StepStatus.DROPPED:
                drop_tick = tick
                self.assertAlmostEqual(step.power_delta_kw, 0.0)
                break

        self.assertEqual(drop_tick, expected_drop_tick)
        self.assertTrue(asset.dropped)

        # Dropout is permanent
        after = update_asset(asset, HvacCommand(delta_setpoint_f=-2.0), quiet_inputs(tick=drop_tick + 1), self.rng)
        self.assertEqual(after.status, StepStatus.DROPPED)
        self.assertEqual(after.power_delta_kw, 0.0)
        self.assertIs(after.asset, asset)


class TestBatteryModel(unittest.TestCase):
    """Residential battery transitions."""

    def setUp(self):
        self.rng = np.random.RandomState(11)

    def test_discharge_delivers_requested_power(self):
        asset = make_battery(soc=0.8, e_kwh=10.0)
        step = update_asset(asset, BatteryCommand(power_kw=5.0), quiet_inputs(), self.rng)

        self.assertEqual(step.status, StepStatus.APPLIED)
        self.assertAlmostEqual(step.power_delta_kw, 5.0)
        self.assertAlmostEqual(step.asset.state.soc, 0.8 - 5.0 / 12 / 10.0)

    def test_discharge_stops_at_reserve(self):
        asset = make_battery(soc=0.21, e_kwh=10.0, soc_reserve=0.2)
        step = update_asset(asset, BatteryCommand(power_kw=5.0), quiet_inputs(), self.rng)

        self.assertAlmostEqual(step.power_delta_kw, 1.2)
        self.assertAlmostEqual(step.asset.state.soc, 0.2)

    def test_charging_gives_no_reduction(self):
        asset = make_battery(soc=0.5, e_kwh=10.0)
        step = update_asset(asset, BatteryCommand(power_kw=-5.0), quiet_inputs(), self.rng)

        self.assertEqual(step.power_delta_kw, 0.0)
        self.assertAlmostEqual(step.asset.state.soc, 0.5 + 5.0 / 12 / 10.0)

    def test_battery_never_drops_or_breaches_reserve(self):
        asset = make_battery(soc=0.9, e_kwh=5.0, soc_reserve=0.2)
        for tick in range(100):
            step = update_asset(asset, BatteryCommand(power_kw=5.0), quiet_inputs(tick=tick), self.rng)
            asset = step.asset
            self.assertFalse(asset.dropped)
            self.assertGreaterEqual(asset.state.soc, 0.2 - 1e-9)
        self.assertAlmostEqual(asset.state.soc, 0.2)

    def test_measurement_noise_is_bounded(self):
        inputs = ExogenousInputs(tick=0, outdoor_temp_f=80.0, start_hour=14.0, measurement_noise_pct=0.1)
        for _ in range(50):
            step = update_asset(make_battery(), BatteryCommand(power_kw=5.0), inputs, self.rng)
            self.assertGreaterEqual(step.power_delta_kw, 4.5)
            self.assertLessEqual(step.power_delta_kw, 5.5)


class TestEvModel(unittest.TestCase):
    """Residential EV charging session transitions."""

    def setUp(self):
        self.rng = np.random.RandomState(3)

    def test_reduced_charging_when_no_deadline_pressure(self):
        asset = make_ev(e_kwh=0.0, e_req_kwh=10.0, t_depart=48)
        step = update_asset(asset, EvCommand(power_kw=2.0), quiet_inputs(), self.rng)

        self.assertEqual(step.status, StepStatus.APPLIED)
        self.assertAlmostEqual(step.power_delta_kw, 5.2)
        self.assertAlmostEqual(step.asset.state.e_kwh, 2.0 / 12)
        self.assertFalse(step.asset.state.override_active)

    def test_deadline_pressure_latches_override(self):
        # 7.2 kW for 6 ticks delivers 3.6 kWh, short of 1.1 x the 5 kWh still needed
        asset = make_ev(e_kwh=35.0, e_req_kwh=40.0, t_depart=6)
        step = update_asset(asset, EvCommand(power_kw=0.0), quiet_inputs(), self.rng)

        self.assertTrue(step.asset.state.override_active)
        self.assertAlmostEqual(step.power_delta_kw, 0.0)
        self.assertAlmostEqual(step.asset.state.e_kwh, 35.0 + 7.2 / 12)

    def test_override_is_sticky(self):
        asset = make_ev(e_kwh=0.0, e_req_kwh=10.0, t_depart=48, override_active=True)
        step = update_asset(asset, EvCommand(power_kw=1.0), quiet_inputs(tick=1), self.rng)

        self.assertTrue(step.asset.state.override_active)
        self.assertAlmostEqual(step.power_delta_kw, 0.0)

    def test_departure_drops_vehicle(self):
        asset = make_ev(t_depart=10)
        step = update_asset(asset, EvCommand(power_kw=0.0), quiet_inputs(tick=10), self.rng)

        self.assertEqual(step.status, StepStatus.DROPPED)
        self.assertEqual(step.power_delta_kw, 0.0)
        self.assertFalse(step.asset.state.plugged)

    def test_unplugged_before_arrival(self):
        asset = make_ev(plugged=False, t_arrival=10)
        step = update_asset(asset, None, quiet_inputs(tick=0), self.rng)

        self.assertEqual(step.power_delta_kw, 0.0)
        self.assertFalse(step.asset.state.plugged)

        arrived = update_asset(step.asset, None, quiet_inputs(tick=10), self.rng)
        self.assertTrue(arrived.asset.state.plugged)
        self.assertAlmostEqual(arrived.power_delta_kw, 0.0)
        self.assertAlmostEqual(arrived.asset.state.e_kwh, 7.2 / 12)


class TestFleetModel(unittest.TestCase):
    """Commercial fleet depot transitions."""

    def setUp(self):
        self.rng = np.random.RandomState(5)

    def test_site_cap_reduces_load(self):
        asset = make_fleet(u_site_max_kw=100.0, needs_kwh=(20.0, 20.0))
        step = update_asset(asset, FleetCommand(site_power_cap_kw=35.0), quiet_inputs(), self.rng)

        # Baseline is 70% of the site rating
        self.assertAlmostEqual(step.power_delta_kw, 35.0)
        for vehicle_state in step.asset.state.vehicle_state.values():
            self.assertAlmostEqual(vehicle_state.e_kwh, 17.5 / 12)

    def test_power_shared_by_urgency(self):
        asset = make_fleet(needs_kwh=(20.0, 10.0))
        allocation = allocate_site_power(asset, asset.state.vehicle_state, 30.0, 0)

        self.assertAlmostEqual(allocation["fleet-1-v0"], 20.0)
        self.assertAlmostEqual(allocation["fleet-1-v1"], 10.0)

    def test_departed_vehicles_draw_nothing(self):
        asset = make_fleet(t_depart=10)
        step = update_asset(asset, None, quiet_inputs(tick=10), self.rng)

        self.assertAlmostEqual(step.power_delta_kw, 70.0)
        self.assertFalse(any(v.plugged for v in step.asset.state.vehicle_state.values()))


class TestCiBuildingModel(unittest.TestCase):
    """C&I building transitions."""

    def setUp(self):
        self.rng = np.random.RandomState(13)

    def test_shed_accumulates_fatigue(self):
        step = update_asset(make_ci(), CiBuildingCommand(hvac_shed_kw=30.0), quiet_inputs(), self.rng)

        self.assertAlmostEqual(step.power_delta_kw, 30.0)
        self.assertAlmostEqual(step.asset.state.fatigue, 0.3 * 0.3 - 0.05 * 0.7)

    def test_fatigue_above_threshold_drops_building(self):
        asset = make_ci(fatigue=1.9, fatigue_a=0.6, fatigue_b=0.0)
        step = update_asset(asset, CiBuildingCommand(hvac_shed_kw=100.0), quiet_inputs(), self.rng)

        available = 100.0 * math.exp(-0.1 * 1.9)
        self.assertEqual(step.status, StepStatus.DROPPED)
        self.assertEqual(step.power_delta_kw, 0.0)
        self.assertAlmostEqual(step.asset.state.fatigue, 1.9 + 0.6 * available / 100.0)
        self.assertGreater(step.asset.state.fatigue, 2.0)

    def test_sustained_shedding_eventually_drops(self):
        asset = make_ci(fatigue_a=0.6, fatigue_b=0.0)
        for tick in range(20):
            step = update_asset(asset, CiBuildingCommand(hvac_shed_kw=100.0), quiet_inputs(tick=tick), self.rng)
            asset = step.asset
            if asset.dropped:
                break
        self.assertTrue(asset.dropped)
        self.assertGreater(asset.state.fatigue, 2.0)

    def test_fatigue_recovers_without_command(self):
        step = update_asset(make_ci(fatigue=0.5), None, quiet_inputs(), self.rng)

        self.assertAlmostEqual(step.asset.state.fatigue, 0.45)
        self.assertAlmostEqual(step.power_delta_kw, 0.0)

    def test_first_toggle_blocked_in_business_hours(self):
        command = CiBuildingCommand(hvac_shed_kw=0.0, process_on=False)
        step = update_asset(make_ci(), command, quiet_inputs(start_hour=14.0), self.rng)

        self.assertTrue(step.asset.state.process_on)
        self.assertEqual(step.asset.state.process_toggles_used, 0)
        self.assertAlmostEqual(step.power_delta_kw, 0.0)

    def test_toggle_outside_business_hours_curtails_process(self):
        command = CiBuildingCommand(hvac_shed_kw=0.0, process_on=False)
        step = update_asset(make_ci(), command, quiet_inputs(start_hour=20.0), self.rng)

        self.assertFalse(step.asset.state.process_on)
        self.assertEqual(step.asset.state.process_toggles_used, 1)
        self.assertAlmostEqual(step.power_delta_kw, 50.0)

    def test_later_toggles_allowed_in_business_hours(self):
        asset = make_ci(process_on=False)
        asset = asset.with_state(replace(asset.state, process_toggles_used=1))
        command = CiBuildingCommand(hvac_shed_kw=0.0, process_on=True)
        step = update_asset(asset, command, quiet_inputs(start_hour=14.0), self.rng)

        self.assertTrue(step.asset.state.process_on)
        self.assertEqual(step.asset.state.process_toggles_used, 2)

        # Toggle budget exhausted
        again = update_asset(step.asset, CiBuildingCommand(0.0, process_on=False),
                             quiet_inputs(tick=1, start_hour=20.0), self.rng)
        self.assertTrue(again.asset.state.process_on)


class TestCommandHandling(unittest.TestCase):
    """Behaviour shared by every asset type."""

    def setUp(self):
        self.rng = np.random.RandomState(17)

    def test_mismatched_command_is_inapplicable(self):
        asset = make_battery(soc=0.8)
        step = update_asset(asset, HvacCommand(delta_setpoint_f=1.0), quiet_inputs(), self.rng)

        self.assertEqual(step.status, StepStatus.INAPPLICABLE)
        self.assertEqual(step.power_delta_kw, 0.0)
        self.assertEqual(step.asset.state.soc, 0.8)

    def test_noncompliance_ignores_command(self):
        step = update_asset(make_battery(), BatteryCommand(power_kw=5.0),
                            quiet_inputs(noncompliance_probability=1.0), self.rng)

        self.assertEqual(step.status, StepStatus.NOT_COMPLIED)
        self.assertEqual(step.power_delta_kw, 0.0)

    def test_same_seed_same_transition(self):
        inputs = ExogenousInputs(
            tick=0, outdoor_temp_f=95.0, start_hour=14.0, noncompliance_probability=0.3,
            sigma_drift=0.02, rho=0.8, measurement_noise_pct=0.05,
        )
        first = [update_asset(make_hvac(f"h{i}"), HvacCommand(2.0), inputs, np.random.RandomState(99))
                 for i in range(5)]
        second = [update_asset(make_hvac(f"h{i}"), HvacCommand(2.0), inputs, np.random.RandomState(99))
                  for i in range(5)]
        self.assertEqual([s.power_delta_kw for s in first], [s.power_delta_kw for s in second])
        self.assertEqual([s.asset for s in first], [s.asset for s in second])

    def test_round_half_up(self):
        self.assertEqual(round_half_up(1.5), 2)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(-1.5), -2)
        self.assertEqual(round_half_up(0.49), 0)


class TestEstimators(unittest.TestCase):
    """Capacity and drop-risk estimates."""

    def test_capacity_per_type(self):
        self.assertAlmostEqual(estimate_capacity(make_battery()), 5.0)
        self.assertAlmostEqual(estimate_capacity(make_hvac()), 3.5)
        self.assertAlmostEqual(estimate_capacity(make_ev(plugged=False)), 0.0)
        self.assertAlmostEqual(estimate_capacity(make_ev(override_active=True)), 0.0)
        self.assertAlmostEqual(estimate_capacity(make_fleet()), 70.0)
        self.assertAlmostEqual(estimate_capacity(make_ci()), 150.0)
        self.assertEqual(estimate_capacity(make_hvac(dropped=True)), 0.0)

    def test_conservation_scales_drop_risk(self):
        battery = make_battery(soc=0.8, soc_reserve=0.2)
        self.assertAlmostEqual(estimate_drop_risk(battery, 0.5), 0.125)
        self.assertAlmostEqual(estimate_drop_risk(battery, 1.0), 0.1875)
        self.assertEqual(estimate_drop_risk(make_hvac(dropped=True)), 1.0)

    def test_drop_risk_is_bounded(self):
        hot = make_hvac(tin_f=80.0)
        self.assertEqual(estimate_drop_risk(hot, 1.0), 1.0)
        self.assertGreaterEqual(estimate_drop_risk(make_hvac(tin_f=60.0), 0.0), 0.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
