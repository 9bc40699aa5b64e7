import pytest

from conftest import make_detection, make_reference
from tag_localizer.gate import (
    CANDIDATE_STAGE,
    DETECTION_STAGE,
    CandidateFilter,
    FreshnessFilter,
    GateContext,
    LandmarkPresenceFilter,
    PlausibilityFilter,
    RangeFilter,
    TargetSetFilter,
    ValidationGate,
    check_freshness,
    check_plausibility,
    check_range,
    check_target_set,
)
from tag_localizer.types import Pose


class CountingFilter(CandidateFilter):
    """Wraps a filter and records how often it ran."""

    def __init__(self, inner):
        self.inner = inner
        self.name = inner.name
        self.stage = inner.stage
        self.calls = 0

    def __call__(self, context):
        self.calls += 1
        return self.inner(context)


def test_target_set():
    assert check_target_set("3", ["1", "3"]).accepted
    result = check_target_set("4", ["1", "3"])
    assert not result.accepted
    assert result.reason == "tag_id(4) is not in target_tag_ids"


def test_range_boundary_is_inclusive():
    assert check_range((0.0, 0.0, 10.0), 100.0).accepted
    assert not check_range((0.0, 0.0, 10.0 + 1e-6), 100.0).accepted


def test_range_uses_euclidean_distance():
    assert check_range((6.0, 0.0, 8.0), 100.0).accepted
    assert not check_range((6.0, 0.1, 8.0), 100.0).accepted


def test_freshness_boundary_is_inclusive():
    ref = make_reference((0.0, 0.0, 0.0), stamp=95.0)
    assert check_freshness(100.0, ref, 5.0).accepted
    assert not check_freshness(100.0 + 1e-6, ref, 5.0).accepted


def test_freshness_is_symmetric_in_time():
    ref = make_reference((0.0, 0.0, 0.0), stamp=105.0)
    assert check_freshness(100.0, ref, 5.0).accepted
    assert not check_freshness(99.0, ref, 5.0).accepted


def test_freshness_without_reference_rejects():
    result = check_freshness(100.0, None, 5.0)
    assert not result.accepted
    assert "no reference" in result.reason


def test_plausibility_zero_tolerance_accepts_exact_match():
    ref = make_reference((1.0, 2.0, 3.0))
    assert check_plausibility((1.0, 2.0, 3.0), ref, 0.0).accepted
    assert not check_plausibility((1.0, 2.0, 3.001), ref, 0.0).accepted


def test_plausibility_reports_both_positions():
    ref = make_reference((0.0, 0.0, 0.0))
    result = check_plausibility((3.0, 4.0, 0.0), ref, 1.0)
    assert not result.accepted
    assert "5.000" in result.reason


def test_from_config_order(config):
    gate = ValidationGate.from_config(config)
    assert [f.name for f in gate.filters] == [
        "target_set",
        "landmark_presence",
        "range",
        "freshness",
        "plausibility",
    ]
    assert [f.stage for f in gate.filters] == [DETECTION_STAGE] * 3 + [CANDIDATE_STAGE] * 2


def test_short_circuit_on_first_rejection(landmarks):
    target = CountingFilter(TargetSetFilter(["0"]))
    presence = CountingFilter(LandmarkPresenceFilter())
    rng = CountingFilter(RangeFilter(100.0))
    gate = ValidationGate([target, presence, rng])

    result = gate.evaluate(GateContext(make_detection("5"), landmarks))

    assert not result.accepted
    assert result.rejection.name == "target_set"
    assert result.evaluated == ["target_set"]
    assert (target.calls, presence.calls, rng.calls) == (1, 0, 0)


def test_stage_selection_skips_other_stage(landmarks):
    fresh = CountingFilter(FreshnessFilter(1.0))
    plaus = CountingFilter(PlausibilityFilter(1.0))
    gate = ValidationGate([TargetSetFilter(["0"]), LandmarkPresenceFilter(), RangeFilter(100.0), fresh, plaus])

    result = gate.evaluate(GateContext(make_detection("0"), landmarks), DETECTION_STAGE)

    assert result.accepted
    assert result.evaluated == ["target_set", "landmark_presence", "range"]
    assert fresh.calls == 0 and plaus.calls == 0


def test_candidate_stage_freshness_before_plausibility(landmarks):
    """A stale and distant reference is reported as stale."""
    gate = ValidationGate([FreshnessFilter(1.0), PlausibilityFilter(1.0)])
    ctx = GateContext(
        make_detection("0", stamp=100.0),
        landmarks,
        reference=make_reference((100.0, 100.0, 0.0), stamp=50.0),
        candidate=Pose((10.0, 0.0, -2.0), (0, 0, 0, 1), "map"),
    )

    result = gate.evaluate(ctx, CANDIDATE_STAGE)

    assert result.rejection.name == "freshness"
    assert result.evaluated == ["freshness"]


def test_plausibility_without_candidate_rejects(landmarks):
    ctx = GateContext(make_detection("0"), landmarks, reference=make_reference((0.0, 0.0, 0.0)))
    result = PlausibilityFilter(1.0)(ctx)
    assert not result.accepted


@pytest.mark.parametrize(
    "tag_id, position, expected",
    [
        ("0", (0.0, 0.0, 2.0), None),
        ("3", (0.0, 0.0, 2.0), "target_set"),
        ("2", (0.0, 0.0, 2.0), "landmark_presence"),
        ("0", (0.0, 0.0, 12.0), "range"),
    ],
)
def test_detection_stage_outcomes(config, landmarks, tag_id, position, expected):
    gate = ValidationGate.from_config(config)
    result = gate.evaluate(GateContext(make_detection(tag_id, position), landmarks), DETECTION_STAGE)
    if expected is None:
        assert result.accepted
    else:
        assert result.rejection.name == expected
        assert result.evaluated[-1] == expected


def test_plausibility_rejects_frame_mismatch():
    ref = make_reference((1.0, 2.0, 3.0), frame_id="odom")
    result = check_plausibility((1.0, 2.0, 3.0), ref, 1.0, candidate_frame="map")
    assert not result.accepted
    assert result.reason == "candidate frame map does not match reference frame odom"
    assert check_plausibility((1.0, 2.0, 3.0), ref, 1.0, candidate_frame="odom").accepted


def test_plausibility_filter_passes_candidate_frame(landmarks):
    ctx = GateContext(
        make_detection("0"),
        landmarks,
        reference=make_reference((10.0, 0.0, -2.0), frame_id="odom"),
        candidate=Pose((10.0, 0.0, -2.0), (0, 0, 0, 1), "map"),
    )
    result = PlausibilityFilter(1.0)(ctx)
    assert not result.accepted
    assert "does not match" in result.reason
