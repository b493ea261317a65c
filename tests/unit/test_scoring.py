"""Tests for per-submission point computation."""

import pytest

from leaps.ledger.scoring import compute_points, payload_count


class TestComputePoints:
    @pytest.mark.parametrize(
        ("activity", "points"),
        [("LEARN", 20), ("EXPLORE", 50), ("PRESENT", 20), ("SHINE", 0), ("learn", 20)],
    )
    def test_flat_stages(self, activity, points):
        assert compute_points(activity, {}) == points

    def test_amplify_formula(self):
        assert compute_points("AMPLIFY", {"peersTrained": 10, "studentsTrained": 30}) == 50

    def test_amplify_caps(self):
        assert compute_points("AMPLIFY", {"peersTrained": 500, "studentsTrained": 5000}) == 50 * 2 + 200

    def test_amplify_snake_case_payload(self):
        assert compute_points("AMPLIFY", {"peers_trained": 1, "students_trained": 3}) == 5

    def test_amplify_without_payload(self):
        assert compute_points("AMPLIFY", None) == 0

    def test_unknown_activity(self):
        assert compute_points("DANCE", {}) == 0


class TestPayloadCount:
    def test_numeric_strings(self):
        assert payload_count({"n": "12"}, "n") == 12

    def test_negative_clamped(self):
        assert payload_count({"n": -4}, "n") == 0

    def test_booleans_and_junk_ignored(self):
        assert payload_count({"a": True, "b": "lots", "c": 3}, "a", "b", "c") == 3
