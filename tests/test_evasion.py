"""Tests for evasion profiles."""

import random

import pytest

from netsage.modules.evasion import PROFILES, SOURCE_PORTS, build_profile


class TestBuildProfile:
    def test_minimal(self):
        profile = build_profile("minimal", random.Random(1))
        assert profile.source_port is None
        assert profile.decoys == ()
        assert profile.flags() == ["--randomize-hosts", "--data-length=8"]

    def test_moderate(self):
        profile = build_profile("moderate", random.Random(1))
        flags = profile.flags()
        assert "-f" in flags
        assert f"--source-port={profile.source_port}" in flags
        assert profile.source_port in SOURCE_PORTS
        assert "--scan-delay=100ms" in flags

    def test_aggressive_decoys_include_me_once(self):
        profile = build_profile("aggressive", random.Random(7))
        assert len(profile.decoys) == 6
        assert profile.decoys.count("ME") == 1
        flags = profile.flags()
        assert "-ff" in flags
        assert "--spoof-mac=0" in flags
        assert "--randomize-ports" in flags
        assert any(flag.startswith("-D") and "ME" in flag for flag in flags)
        assert profile.describe()["decoy_count"] == 5

    def test_values_fixed_per_profile(self):
        profile = build_profile("aggressive", random.Random(3))
        assert profile.flags() == profile.flags()

    def test_same_seed_same_profile(self):
        assert build_profile("aggressive", random.Random(9)) == build_profile(
            "aggressive", random.Random(9)
        )

    def test_connect_scans_drop_raw_packet_flags(self):
        flags = build_profile("aggressive", random.Random(2)).flags(raw_packets=False)
        assert flags == ["--randomize-hosts", "--randomize-ports", "--scan-delay=250ms"]

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown evasion profile"):
            build_profile("invisible")

    def test_all_profiles_build(self):
        for name in PROFILES:
            assert build_profile(name).name == name
