"""Tests for scoring policies and their rules."""

import dataclasses

import pytest

from deepguard.errors import UnknownPolicyError
from deepguard.policy import (
    AGGRESSIVE,
    CONSERVATIVE,
    DEFAULT_POLICY_NAME,
    DEFAULT_THREAT_LADDER,
    KeywordRule,
    SignalRule,
    ThreatTier,
    available_policies,
    get_policy,
)
from deepguard.types import SignalSet, ThreatLevel


def _signals(**overrides) -> SignalSet:
    values = dict(
        face=0.0, artifact=0.0, edge_consistency=75.0, compression=0.0,
        color_consistency=100.0, frequency=0.0, quality=0.0,
    )
    values.update(overrides)
    return SignalSet(**values)


class TestRegistry:
    def test_default_is_conservative(self):
        assert DEFAULT_POLICY_NAME == "conservative"
        assert get_policy() is CONSERVATIVE

    def test_lookup_is_case_insensitive(self):
        assert get_policy(" Aggressive ") is AGGRESSIVE

    def test_available(self):
        assert available_policies() == ["aggressive", "conservative"]

    def test_unknown(self):
        with pytest.raises(UnknownPolicyError, match="balanced"):
            get_policy("balanced")

    def test_unknown_is_a_key_error(self):
        with pytest.raises(KeyError):
            get_policy("nope")

    @pytest.mark.parametrize("policy", [CONSERVATIVE, AGGRESSIVE])
    def test_builtin_policies_validate(self, policy):
        policy.validate()


class TestKeywordRule:
    def test_case_insensitive_substring(self):
        rule = KeywordRule("suspicious", ("fake",), 60.0)
        assert rule.matches("My_FAKE_video.mp4")
        assert not rule.matches("holiday.jpg")

    def test_substring_inside_words(self):
        # "ai" appears inside "portrait"
        assert CONSERVATIVE.keyword_rules[0].matches("portrait.png")


class TestSignalRule:
    def test_strict_greater(self):
        rule = SignalRule("artifact", ">", 70, 15.0)
        assert rule.fires(_signals(artifact=70.5))
        assert not rule.fires(_signals(artifact=70.0))

    def test_strict_less(self):
        rule = SignalRule("edge_consistency", "<", 60, 15.0)
        assert rule.fires(_signals(edge_consistency=59.9))
        assert not rule.fires(_signals(edge_consistency=60.0))

    def test_name(self):
        assert SignalRule("quality", "<", 40.0, 30.0).name == "quality < 40"


class TestThreatTier:
    def test_clause_without_artifact(self):
        tier = ThreatTier(ThreatLevel.HIGH, ((75, None),))
        assert tier.matches(76, 0)
        assert not tier.matches(75, 100)

    def test_clause_with_artifact(self):
        tier = ThreatTier(ThreatLevel.HIGH, ((65, 60),))
        assert tier.matches(66, 61)
        assert not tier.matches(66, 60)


class TestValidate:
    def _broken(self, **changes):
        return dataclasses.replace(CONSERVATIVE, name="broken", **changes)

    def test_unknown_signal(self):
        policy = self._broken(signal_rules=(SignalRule("sharpness", ">", 1, 1),))
        with pytest.raises(ValueError, match="unknown signal 'sharpness'"):
            policy.validate()

    def test_unknown_operator(self):
        policy = self._broken(signal_rules=(SignalRule("face", ">=", 1, 1),))
        with pytest.raises(ValueError, match="unknown operator"):
            policy.validate()

    def test_empty_keywords(self):
        policy = self._broken(keyword_rules=(KeywordRule("empty", (), 5),))
        with pytest.raises(ValueError, match="no keywords"):
            policy.validate()

    def test_empty_video_keywords(self):
        policy = self._broken(video_keyword_rules=(KeywordRule("empty", (), 5),))
        with pytest.raises(ValueError, match="no keywords"):
            policy.validate()

    def test_ladder_order(self):
        policy = self._broken(threat_ladder=tuple(reversed(DEFAULT_THREAT_LADDER)))
        with pytest.raises(ValueError, match="most severe first"):
            policy.validate()

    def test_low_tier_rejected(self):
        ladder = DEFAULT_THREAT_LADDER + (ThreatTier(ThreatLevel.LOW, ((0, None),)),)
        with pytest.raises(ValueError, match="fallback"):
            self._broken(threat_ladder=ladder).validate()

    def test_temporal_weights(self):
        with pytest.raises(ValueError, match="temporal weights"):
            self._broken(temporal_weights=(0.5, 0.5, 0.5)).validate()

    def test_reports_every_problem(self):
        policy = self._broken(jitter_amplitude=-1.0, decision_threshold=150.0)
        with pytest.raises(ValueError) as excinfo:
            policy.validate()
        message = str(excinfo.value)
        assert "jitter" in message
        assert "decision threshold" in message

    def test_aspect_bounds(self):
        with pytest.raises(ValueError, match="aspect_min"):
            self._broken(aspect_min=3.0, aspect_max=1.0).validate()


class TestRulesFor:
    def test_conservative_shares_rules(self):
        assert CONSERVATIVE.rules_for(video=True) == CONSERVATIVE.signal_rules

    def test_aggressive_has_video_rules(self):
        assert AGGRESSIVE.rules_for(video=True) == AGGRESSIVE.video_signal_rules
        assert AGGRESSIVE.rules_for(video=False) == AGGRESSIVE.signal_rules

    def test_conservative_shares_keyword_rules(self):
        assert CONSERVATIVE.keyword_rules_for(video=True) == CONSERVATIVE.keyword_rules

    def test_aggressive_has_video_keyword_rules(self):
        suspicious, authentic = AGGRESSIVE.keyword_rules_for(video=True)
        assert suspicious.bonus == 80.0
        assert authentic.bonus == -25.0
        assert authentic.matches("real_clip.mp4")
        assert not authentic.matches("original_clip.mp4")
        assert AGGRESSIVE.keyword_rules_for(video=False) == AGGRESSIVE.keyword_rules
