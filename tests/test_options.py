"""Tests for optimizer option merging."""

import pytest

from python_dglm.options import OptimizerOptions


class TestDefaults:
    def test_documented_defaults(self):
        opts = OptimizerOptions()
        assert opts.algorithm == "SLSQP"
        assert opts.tol_rel == 0.01
        assert opts.maxeval == 1000
        assert opts.print_level == 0
        assert dict(opts.local_opts) == {"algorithm": "IRLS", "tol_rel": 1e-8, "maxeval": 100}

    def test_scipy_mapping(self):
        method, options = OptimizerOptions().to_scipy()
        assert method == "SLSQP"
        assert options == {"ftol": 0.01, "maxiter": 1000, "disp": False}

    def test_trust_constr_mapping(self):
        method, options = OptimizerOptions(algorithm="trust-constr", print_level=5).to_scipy()
        assert method == "trust-constr"
        assert options["maxiter"] == 1000
        assert options["verbose"] == 3


class TestMerge:
    def test_top_level_key_by_key(self):
        opts = OptimizerOptions().merged({"maxeval": 50})
        assert opts.maxeval == 50
        assert opts.tol_rel == 0.01
        assert opts.algorithm == "SLSQP"

    def test_local_opts_merged_one_level(self):
        opts = OptimizerOptions().merged({"local_opts": {"maxeval": 5}})
        assert opts.local_opts["maxeval"] == 5
        assert opts.local_opts["algorithm"] == "IRLS"
        assert opts.local_opts["tol_rel"] == 1e-8

    def test_merge_does_not_mutate_base(self):
        base = OptimizerOptions()
        base.merged({"tol_rel": 1e-4, "local_opts": {"tol_rel": 1e-3}})
        assert base.tol_rel == 0.01
        assert base.local_opts["tol_rel"] == 1e-8

    def test_none_returns_defaults(self):
        base = OptimizerOptions()
        assert base.merged(None) is base

    def test_instance_replaces(self):
        custom = OptimizerOptions(maxeval=7)
        assert OptimizerOptions().merged(custom) is custom

    def test_local_fit_kwargs(self):
        kwargs = OptimizerOptions().merged({"local_opts": {"maxeval": 20}}).local_fit_kwargs()
        assert kwargs == {"method": "IRLS", "maxiter": 20, "tol": 1e-8}
        kwargs = OptimizerOptions().merged({"local_opts": {"algorithm": "newton"}}).local_fit_kwargs()
        assert kwargs["method"] == "newton"
        assert "tol" not in kwargs

    def test_as_dict_echo(self):
        d = OptimizerOptions().merged({"print_level": 1}).as_dict()
        assert d["print_level"] == 1
        assert d["local_opts"]["algorithm"] == "IRLS"


class TestValidation:
    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown opts"):
            OptimizerOptions().merged({"xtol": 1.0})

    def test_unknown_local_key(self):
        with pytest.raises(ValueError, match="Unknown local_opts"):
            OptimizerOptions().merged({"local_opts": {"foo": 1}})

    def test_bad_algorithm(self):
        with pytest.raises(ValueError, match="algorithm"):
            OptimizerOptions().merged({"algorithm": "NLOPT_LD_MMA"})

    def test_bad_local_algorithm(self):
        with pytest.raises(ValueError, match="local_opts"):
            OptimizerOptions().merged({"local_opts": {"algorithm": "simplex"}})

    def test_bad_tolerance(self):
        with pytest.raises(ValueError, match="tol_rel"):
            OptimizerOptions(tol_rel=0.0)

    def test_non_mapping(self):
        with pytest.raises(TypeError):
            OptimizerOptions().merged([("maxeval", 3)])
