"""
Basic usage example of the VPP dispatch simulator.
This example demonstrates core functionality including:
- Building a scenario with a mixed residential and commercial portfolio
- Choosing a dispatch strategy
- Stepping through a demand-response event and adjusting the strategy mid-run
- Scoring the run and inspecting per-type performance
"""

from vppsim import SimulationOrchestrator
from vppsim.analysis import calculate_final_score, format_duration, history_to_frame
from vppsim.config import (
    BaselineErrorConfig, Scenario, ScenarioConfig, SimulationConfig, StrategyConfig,
    TargetObjectiveConfig, WeatherConfig,
)
from vppsim.events import EventType
from vppsim.models import (
    BatteryAsset, BatteryParams, BatteryState,
    BusinessHours, CiBuildingAsset, CiBuildingParams, CiBuildingState,
    EvAsset, EvParams, EvState,
    FleetSiteAsset, FleetSiteParams, FleetSiteState, FleetVehicle, FleetVehicleState,
    HvacAsset, HvacParams, HvacState,
)


def build_portfolio():
    """A handful of assets of every type."""
    assets = []

    for i in range(10):
        assets.append(HvacAsset(
            id=f"hvac-{i}",
            params=HvacParams(
                mode="cooling",
                pref_setpoint_f=73 + i % 3,
                comfort_max_f=79,
                comfort_min_f=66,
                alpha=0.04,
                beta=-0.5,
                hvac_kw=3.5,
            ),
            state=HvacState(tin_f=74.0, hvac_on=True, setpoint_f=73 + i % 3, baseline_bias=0.01 * (i % 4 - 2)),
        ))

    for i in range(6):
        assets.append(BatteryAsset(
            id=f"battery-{i}",
            params=BatteryParams(e_kwh=13.5, p_dis_kw=5.0, p_ch_kw=5.0, soc_reserve=0.2),
            state=BatteryState(soc=0.6 + 0.05 * i),
        ))

    for i in range(4):
        assets.append(EvAsset(
            id=f"ev-{i}",
            params=EvParams(
                charger_level="L2",
                p_max_kw=7.2,
                e_req_kwh=30.0,
                e_capacity_kwh=75.0,
                t_arrival=i * 3,
                t_depart=36 + i * 4,
            ),
            state=EvState(e_kwh=10.0 + 2 * i),
        ))

    vehicles = tuple(
        FleetVehicle(id=f"van-{i}", p_max_kw=19.2, e_req_kwh=60.0, e_capacity_kwh=100.0, t_arrival=0, t_depart=48)
        for i in range(8)
    )
    assets.append(FleetSiteAsset(
        id="depot-north",
        params=FleetSiteParams(u_site_max_kw=150.0, vehicles=vehicles),
        state=FleetSiteState(vehicle_state={v.id: FleetVehicleState(e_kwh=20.0, plugged=True) for v in vehicles}),
    ))

    assets.append(CiBuildingAsset(
        id="office-park",
        params=CiBuildingParams(
            smax_hvac_kw=120.0,
            fatigue_k=0.15,
            fatigue_a=0.25,
            fatigue_b=0.05,
            process_load_kw=60.0,
            max_process_toggles=2,
            business_hours=BusinessHours(8, 18),
        ),
        state=CiBuildingState(),
    ))
    return assets


def main():
    scenario = Scenario(
        config=ScenarioConfig(
            start_time="2024-07-15T14:00:00-05:00",
            timesteps=48,
            weather=WeatherConfig(outdoor_temp_f=[94 + (t % 12) / 4 for t in range(48)]),
            objective=TargetObjectiveConfig(target_kw=150.0),
            baseline_error=BaselineErrorConfig(sigma_bias=0.03, sigma_drift=0.01, rho=0.8),
            measurement_noise_pct=0.05,
            noncompliance_probability=0.1,
        ),
        assets=build_portfolio(),
    )

    strategy = StrategyConfig(
        decision_framework="feedback_control",
        framework_subtype="pid_like_control",
        objective="capacity",
        selection_orderings=["highest_headroom", "highest_trust_score", "fatigue_balanced"],
        risk_posture="neutral",
        feedback_mode="closed_loop",
        dispatch_intensity={"ci_building": 75, "hvac_resi": 40},
    )

    sim = SimulationOrchestrator(
        scenario,
        strategy=strategy,
        config=SimulationConfig(difficulty="medium", random_seed=2024, configure_logging=True),
    )

    print("Running demand-response event...")
    print(f"Assets: {len(scenario.assets)}")
    print(f"Duration: {format_duration(scenario.config.timesteps)}")
    print(f"Strategy: {strategy.decision_framework.value}/{strategy.framework_subtype}")

    while not sim.get_state().is_complete:
        outcome = sim.step()
        if not outcome.applied:
            print(f"Tick {outcome.tick} not applied: {outcome.error}")
            break

        for event in outcome.events:
            if event.type == EventType.ASSET_DROPPED:
                print(f"  {event.timestamp:%H:%M} {event.asset_id} dropped out")

        # Switch to a more conservative posture for the second half of the event
        if outcome.tick == 23:
            sim.update_risk_posture("risk_averse")
            print("  Switched to risk-averse posture")

    state = sim.get_state()
    score = calculate_final_score(state)

    print("\nResults:")
    print(f"  Grade: {score.grade}")
    print(f"  Average penalty: {score.average_penalty:.4f}")
    print(f"  Target met: {score.percent_target_met:.1f}%")
    print(f"  Assets dropped: {score.assets_dropped}")

    print("\nPer asset type:")
    for performance in score.asset_type_performance:
        if performance.asset_count == 0:
            continue
        print(f"  {performance.asset_type.value:<13} "
              f"{performance.total_kw_contributed:8.1f} kW total, "
              f"{performance.dispatch_count:4d} dispatches, "
              f"{performance.compliance_rate:5.1f}% still active")

    frame = history_to_frame(state.history)
    print("\nLast five ticks:")
    print(frame[["time", "target_kw", "achieved_kw", "penalty"]].tail().round(3))


if __name__ == "__main__":
    main()
