"""Tests for stock_optimizer/errors.py."""

from __future__ import annotations

import pytest

from stock_optimizer.errors import ErrorKind, OptimizerError, http_status


class TestHttpStatus:
    @pytest.mark.parametrize(
        "kind, status",
        [
            (ErrorKind.INSUFFICIENT_DATA, 400),
            (ErrorKind.PREDICTION_FAILED, 502),
            (ErrorKind.INVALID_ALLOCATION, 400),
            (ErrorKind.OPTIMIZATION_FAILED, 500),
            (ErrorKind.NOT_FOUND, 404),
        ],
    )
    def test_mapping(self, kind, status):
        assert http_status(kind) == status

    def test_every_kind_mapped(self):
        for kind in ErrorKind:
            assert http_status(kind) >= 400


class TestConstructors:
    def test_insufficient_data_names_symbol(self):
        err = OptimizerError.insufficient_data("AAPL", "3 bars")
        assert err.kind == ErrorKind.INSUFFICIENT_DATA
        assert err.symbol == "AAPL"
        assert "AAPL" in err.message
        assert str(err).startswith("[INSUFFICIENT_DATA]")
        assert err.is_client_error

    def test_prediction_failed_chains_cause(self):
        cause = RuntimeError("model offline")
        err = OptimizerError.prediction_failed("MSFT", cause)
        assert err.__cause__ is cause
        assert err.cause is cause
        assert "model offline" in err.message
        assert not err.is_client_error

    def test_prediction_failed_without_cause(self):
        err = OptimizerError.prediction_failed("MSFT")
        assert "oracle returned nothing" in err.message

    def test_not_found(self):
        err = OptimizerError.portfolio_not_found("p-9")
        assert err.status == 404
        assert err.portfolio_id == "p-9"

    def test_optimization_failed_is_server_error(self):
        err = OptimizerError.optimization_failed("p-1", "disk full")
        assert err.status == 500
        assert "p-1" in err.message

    def test_is_an_exception(self):
        with pytest.raises(OptimizerError) as exc_info:
            raise OptimizerError.invalid_allocation("weights sum to 0.9")
        assert exc_info.value.kind == ErrorKind.INVALID_ALLOCATION
