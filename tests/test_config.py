from __future__ import annotations

import pytest
from pydantic import ValidationError

from analysis.comparison import MissingJoints
from analysis.config import PRESETS, BalanceRule, ExerciseConfig, RepCounting, get_preset
from analysis.phase import AT_END, AT_START, DOWN, IN_BETWEEN, UP


def test_default_config():
    cfg = ExerciseConfig()
    assert len(cfg.joint_names) == 8
    assert cfg.angle_alpha == 0.65
    assert cfg.missing_joints is MissingJoints.ZERO
    assert cfg.reps is None
    assert not cfg.needs_reference


@pytest.mark.parametrize("field", ["angle_alpha", "distance_alpha", "score_alpha"])
@pytest.mark.parametrize("value", [0.0, -0.5, 1.01])
def test_alpha_out_of_range_rejected(field, value):
    with pytest.raises(ValidationError):
        ExerciseConfig(**{field: value})


def test_bad_joint_table_rejected():
    with pytest.raises(ValidationError):
        ExerciseConfig(joints={"left_knee": (23, 25, 40)})
    with pytest.raises(ValidationError):
        ExerciseConfig(joints={})


def test_weights_must_name_known_joints():
    with pytest.raises(ValidationError):
        ExerciseConfig(weights={"tail": 2.0})
    with pytest.raises(ValidationError):
        ExerciseConfig(weights={"left_knee": -1.0})
    assert ExerciseConfig(weights={"left_knee": 2.0}).weights == {"left_knee": 2.0}


def test_rep_signals_must_be_configured():
    with pytest.raises(ValidationError):
        ExerciseConfig(reps=RepCounting(signals=["left_ankle"]))
    cfg = ExerciseConfig(reps=RepCounting(signals=["reference_distance"], low=150, high=150))
    assert cfg.needs_reference


def test_rep_counting_rule_validation():
    with pytest.raises(ValidationError):
        RepCounting(signals=[])
    with pytest.raises(ValidationError):
        RepCounting(signals=["left_knee"], low=170, high=90)
    with pytest.raises(ValidationError):
        RepCounting(signals=["left_knee"], initial_phase="sideways")
    with pytest.raises(ValidationError):
        RepCounting(signals=["left_knee"], below_phase=UP, above_phase=UP)


def test_rep_counting_defaults():
    threshold = RepCounting(signals=["left_knee"])
    assert threshold.resolved_initial == UP
    assert threshold.resolved_completion == (DOWN, UP)

    movement = RepCounting(mode="movement")
    assert movement.resolved_initial == IN_BETWEEN
    assert movement.resolved_completion == (AT_START, AT_END)


def test_balance_joints_must_be_configured():
    with pytest.raises(ValidationError):
        ExerciseConfig(joints={"left_elbow": (11, 13, 15)}, balance=BalanceRule())


def test_presets_are_valid_and_named():
    for name, cfg in PRESETS.items():
        assert cfg.name == name
        ExerciseConfig.model_validate(cfg.model_dump())
    assert PRESETS["lunge"].reps.limbs == "independent"
    assert "left_arm_raise" in PRESETS["lateral_raise"].joints
    assert PRESETS["reference_reps"].needs_reference


def test_get_preset_returns_independent_copy():
    cfg = get_preset("squat")
    cfg.reps.low = 10.0
    assert PRESETS["squat"].reps.low == 110.0
    with pytest.raises(KeyError):
        get_preset("handstand")


def test_config_round_trips_through_json():
    cfg = get_preset("lunge")
    again = ExerciseConfig.model_validate_json(cfg.model_dump_json())
    assert again == cfg
