from __future__ import annotations

import math
import random
from typing import List, Optional

from analysis.features import DEFAULT_JOINTS, JointSpec, calculate_angle, extract_joint_angles
from pose.landmarks import L_ELBOW, L_SHOULDER, L_WRIST, Landmark


def _kp(x: float, y: float, v: Optional[float] = None) -> Landmark:
    return Landmark(x=x, y=y, visibility=v)


def _blank_frame() -> List[Optional[Landmark]]:
    return [None] * 33


def test_angle_basic_right_angle():
    # Right angle at B: A(0,0), B(0,1), C(1,1)
    A = _kp(0.0, 0.0)
    B = _kp(0.0, 1.0)
    C = _kp(1.0, 1.0)
    th = calculate_angle(A, B, C)
    assert abs(th - 90.0) < 1e-9


def test_angle_straight_line_is_180():
    th = calculate_angle(_kp(0.1, 0.5), _kp(0.4, 0.5), _kp(0.9, 0.5))
    assert abs(th - 180.0) < 1e-9
    # diagonal line through B
    th = calculate_angle(_kp(0.0, 0.0), _kp(0.5, 0.5), _kp(1.0, 1.0))
    assert abs(th - 180.0) < 1e-9


def test_angle_folds_reflex_into_range():
    # bearings of -170 and +170 degrees: raw difference 340, interior angle 20
    B = _kp(0.0, 0.0)
    A = _kp(math.cos(math.radians(-170)), math.sin(math.radians(-170)))
    C = _kp(math.cos(math.radians(170)), math.sin(math.radians(170)))
    assert abs(calculate_angle(A, B, C) - 20.0) < 1e-9


def test_angle_symmetric_and_bounded():
    rng = random.Random(7)
    for _ in range(200):
        A = _kp(rng.random(), rng.random())
        B = _kp(rng.random(), rng.random())
        C = _kp(rng.random(), rng.random())
        th = calculate_angle(A, B, C)
        assert 0.0 <= th <= 180.0
        assert abs(th - calculate_angle(C, B, A)) < 1e-9


def test_angle_nan_on_missing():
    assert math.isnan(calculate_angle(_kp(0.0, 0.0), None, _kp(1.0, 1.0)))


def test_extract_omits_joint_with_missing_landmark():
    f = _blank_frame()
    f[L_SHOULDER] = _kp(0.5, 0.3)
    f[L_ELBOW] = _kp(0.5, 0.5)
    f[L_WRIST] = _kp(0.7, 0.5)
    angles = extract_joint_angles(f)
    assert set(angles) == {"left_elbow"}
    assert abs(angles["left_elbow"] - 90.0) < 1e-9

    f[L_WRIST] = None
    assert "left_elbow" not in extract_joint_angles(f)


def test_extract_empty_and_short_frames():
    assert extract_joint_angles(None) == {}
    assert extract_joint_angles([]) == {}
    # indices past the end of a truncated frame count as absent
    short = [_kp(0.1, 0.1)] * 12
    assert extract_joint_angles(short) == {}


def test_extract_treats_nan_and_low_visibility_as_absent():
    f = _blank_frame()
    f[L_SHOULDER] = _kp(0.5, 0.3, v=0.9)
    f[L_ELBOW] = _kp(0.5, 0.5, v=0.9)
    f[L_WRIST] = _kp(0.7, 0.5, v=0.2)
    assert "left_elbow" in extract_joint_angles(f)
    assert "left_elbow" not in extract_joint_angles(f, min_visibility=0.5)

    f[L_WRIST] = _kp(float("nan"), 0.5)
    assert "left_elbow" not in extract_joint_angles(f)


def test_extract_custom_joint_table():
    f = _blank_frame()
    f[0] = _kp(0.0, 0.0)
    f[1] = _kp(0.0, 1.0)
    f[2] = _kp(1.0, 1.0)
    angles = extract_joint_angles(f, [JointSpec("custom", 0, 1, 2)])
    assert list(angles) == ["custom"]
    assert abs(angles["custom"] - 90.0) < 1e-9


def test_default_joint_table_is_valid():
    names = [j.name for j in DEFAULT_JOINTS]
    assert len(names) == len(set(names)) == 8
    for j in DEFAULT_JOINTS:
        j.validate()
