#!/usr/bin/env python3
"""Tests for NormFlowConfig validation and JSON loading.

Usage:
    pytest tests/test_config.py -v
"""

import json

import numpy as np
import pytest

from eventnormflow import ConfigError, NormFlowConfig


class TestValidation:
    """Out-of-range parameters are rejected."""

    def test_defaults_valid(self):
        cfg = NormFlowConfig()
        assert cfg.window_radius == 2
        assert cfg.max_flow_norm == 4e3

    @pytest.mark.parametrize("field, value", [
        ("decay_sec", 0.0),
        ("window_radius", 0),
        ("neighbor_radius", -1),
        ("min_inlier_ratio", 0.0),
        ("min_inlier_ratio", 1.01),
        ("time_dist_threshold", 0.0),
        ("ransac_max_iterations", 0),
        ("max_flow_norm", -1.0),
        ("filter_threshold", -0.5),
    ])
    def test_invalid_value(self, field, value):
        with pytest.raises(ConfigError, match=field):
            NormFlowConfig(**{field: value})

    @pytest.mark.parametrize("field, value", [
        ("window_radius", 2.0),
        ("neighbor_radius", 1.5),
        ("ransac_max_iterations", 50.0),
        ("window_radius", True),
        ("neighbor_radius", "2"),
    ])
    def test_non_integer_rejected(self, field, value):
        with pytest.raises(ConfigError, match=f"{field} must be an integer"):
            NormFlowConfig(**{field: value})

    def test_numpy_integer_accepted(self):
        cfg = NormFlowConfig(window_radius=np.int64(3))
        assert cfg.window_radius == 3

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            NormFlowConfig(decay_sec=-1.0)

    def test_replace(self):
        cfg = NormFlowConfig().replace(window_radius=4)
        assert cfg.window_radius == 4
        with pytest.raises(ConfigError):
            NormFlowConfig().replace(window_radius=0)


class TestJson:
    """JSON sidecar loading."""

    def test_roundtrip(self, tmp_path):
        cfg = NormFlowConfig(decay_sec=0.05, window_radius=3, seed=11)
        path = str(tmp_path / "flow.json")
        cfg.to_json(path)
        assert NormFlowConfig.from_json(path) == cfg

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps({"neighbor_radius": 1}))
        cfg = NormFlowConfig.from_json(str(path))
        assert cfg.neighbor_radius == 1
        assert cfg.decay_sec == NormFlowConfig().decay_sec

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps({"winSize": 3}))
        with pytest.raises(ConfigError, match="Unknown config keys"):
            NormFlowConfig.from_json(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            NormFlowConfig.from_json(str(tmp_path / "missing.json"))

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Failed to parse"):
            NormFlowConfig.from_json(str(path))

    def test_float_radius_in_file_rejected(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps(
            {"window_radius": 2.0, "neighbor_radius": 1.0, "decay_sec": 1.0}))
        with pytest.raises(ConfigError, match="window_radius must be an integer"):
            NormFlowConfig.from_json(str(path))

    def test_non_object(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError, match="JSON object"):
            NormFlowConfig.from_json(str(path))
