"""Tests for policy values, settings and the guarded/retrying helpers."""

import asyncio

import pytest
from kungfu import LazyCoroResult, Ok, Error

from cartflow.config import NO_RETRY, CheckoutConfig, Retry, Settings, Timeouts
from cartflow.errors import ContractViolation, ErrorCategory, IOFailure, PaymentError, Timeout
from cartflow.lift import guarded, is_transient, retrying


def _run(lazy):
    async def main():
        return await lazy

    return asyncio.run(main())


class TestPolicies:
    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            Timeouts(payment=0)

    def test_builders_return_new_values(self):
        base = CheckoutConfig()
        tuned = base.with_timeouts(payment=30).with_tax(basis_points=825)
        assert base.timeouts.payment == 15.0
        assert tuned.timeouts.payment == 30
        assert tuned.timeouts.inventory == base.timeouts.inventory
        assert tuned.tax_basis_points == 825

    @pytest.mark.parametrize(
        ("bps", "subtotal", "tax"),
        [
            (1000, 5200, 520),
            (825, 1000, 83),
            (825, 999, 82),
            (0, 5000, 0),
        ],
    )
    def test_tax_rounds_half_up(self, bps, subtotal, tax):
        assert CheckoutConfig(tax_basis_points=bps).tax_for(subtotal) == tax

    def test_negative_tax_rejected(self):
        with pytest.raises(ValueError):
            CheckoutConfig(tax_basis_points=-1)

    def test_retry_defaults_to_transient_errors(self):
        assert Retry().retry_on is None
        assert NO_RETRY.times == 0


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.log_level == "INFO"
        assert not settings.log_json
        assert settings.checkout.tax_basis_points == 0

    def test_environment_overrides(self):
        settings = Settings.from_env({
            "CARTFLOW_TIMEOUT_PAYMENT": "2.5",
            "CARTFLOW_RETRY_TIMES": "4",
            "CARTFLOW_TAX_BPS": "825",
            "CARTFLOW_LOG_LEVEL": "debug",
            "CARTFLOW_LOG_JSON": "true",
            "CARTFLOW_DATABASE_URL": "sqlite+aiosqlite:///carts.db",
        })
        assert settings.checkout.timeouts.payment == 2.5
        assert settings.cart.timeouts.payment == 2.5
        assert settings.checkout.retry.times == 4
        assert settings.cart.persistence_retry.times == 4
        assert settings.checkout.tax_basis_points == 825
        assert settings.log_level == "DEBUG"
        assert settings.log_json
        assert settings.database_url.endswith("carts.db")


class TestGuarded:
    def test_passes_results_through(self):
        async def ok():
            return Ok(1)

        match _run(guarded(ok, operation="op", seconds=1)):
            case Ok(value):
                assert value == 1
            case other:
                raise AssertionError(f"expected Ok, got {other}")

    def test_timeout(self):
        async def slow():
            await asyncio.sleep(1)
            return Ok(1)

        match _run(guarded(slow, operation="slow.op", seconds=0.01)):
            case Error(Timeout(operation="slow.op")):
                pass
            case other:
                raise AssertionError(f"expected Timeout, got {other}")

    def test_exception_is_contract_violation(self):
        async def broken():
            raise KeyError("sku")

        match _run(guarded(broken, operation="op", seconds=1)):
            case Error(ContractViolation(collaborator="op")):
                pass
            case other:
                raise AssertionError(f"expected ContractViolation, got {other}")

    def test_non_result_is_contract_violation(self):
        async def sloppy():
            return {"ok": True}

        match _run(guarded(sloppy, operation="op", seconds=1)):
            case Error(ContractViolation(detail=detail)):
                assert "dict" in detail
            case other:
                raise AssertionError(f"expected ContractViolation, got {other}")


class TestRetrying:
    def _flaky(self, *outcomes):
        calls = []

        def make():
            calls.append(len(calls))
            outcome = outcomes[min(len(calls) - 1, len(outcomes) - 1)]

            async def attempt():
                return outcome

            return LazyCoroResult(attempt)

        return make, calls

    def test_transient_errors_retried(self):
        make, calls = self._flaky(Error(IOFailure("op", "x")), Ok("done"))
        policy = Retry(times=3, delay=0.0)

        match _run(retrying(make, policy, operation="op")):
            case Ok(value):
                assert value == "done"
            case other:
                raise AssertionError(f"expected Ok, got {other}")
        assert len(calls) == 2

    def test_input_errors_not_retried(self):
        make, calls = self._flaky(Error(PaymentError("declined")), Ok("done"))

        match _run(retrying(make, Retry(times=3, delay=0.0), operation="op")):
            case Error(PaymentError()):
                pass
            case other:
                raise AssertionError(f"expected PaymentError, got {other}")
        assert len(calls) == 1

    def test_gives_up_after_policy(self):
        make, calls = self._flaky(Error(Timeout("op", 1.0)))

        match _run(retrying(make, NO_RETRY, operation="op")):
            case Error(Timeout()):
                pass
            case other:
                raise AssertionError(f"expected Timeout, got {other}")
        assert len(calls) == 1

    def test_custom_retry_on(self):
        make, calls = self._flaky(Error(PaymentError("declined")), Ok("done"))
        policy = Retry(times=2, delay=0.0, retry_on=lambda err: isinstance(err, PaymentError))

        match _run(retrying(make, policy, operation="op")):
            case Ok(value):
                assert value == "done"
            case other:
                raise AssertionError(f"expected Ok, got {other}")
        assert len(calls) == 2

    def test_retried_timeouts_run_guarded_attempts_again(self):
        calls = []

        async def slow_then_fast():
            calls.append(len(calls))
            if len(calls) == 1:
                await asyncio.sleep(1)
            return Ok("fast")

        lazy = retrying(
            lambda: guarded(slow_then_fast, operation="op", seconds=0.02),
            Retry(times=1, delay=0.0),
            operation="op",
        )
        match _run(lazy):
            case Ok(value):
                assert value == "fast"
            case other:
                raise AssertionError(f"expected Ok, got {other}")
        assert len(calls) == 2

    def test_error_categories(self):
        assert is_transient(Timeout("op", 1.0))
        assert not is_transient(ContractViolation("op", "x"))
        assert not is_transient("plain string")
        assert ContractViolation("op", "x").category is ErrorCategory.FATAL


class TestLogging:
    @pytest.fixture(autouse=True)
    def _restore_logging(self):
        import logging

        import structlog

        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_json_lines_carry_bound_context(self, capsys):
        import json

        import structlog

        from cartflow import bind_session, clear_session, configure_logging

        configure_logging("INFO", json=True)
        bind_session(cart_id="cart-9")
        structlog.get_logger("cartflow.test").info("cart changed", version=3)
        clear_session()

        line = capsys.readouterr().err.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "cart changed"
        assert event["cart_id"] == "cart-9"
        assert event["version"] == 3
        assert event["level"] == "info"

    def test_noisy_libraries_quieted(self):
        import logging

        from cartflow import configure_logging

        configure_logging("DEBUG")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


class TestPublicSurface:
    def test_lift_exports_only_the_collaborator_helpers(self):
        import cartflow
        from cartflow import lift

        assert set(lift.__all__) == {"guarded", "is_transient", "retrying"}
        assert not hasattr(lift, "from_result")
        assert not {"Lazy", "Pure"} & set(cartflow.__all__)
