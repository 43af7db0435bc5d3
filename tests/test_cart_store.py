"""Tests for CartStore mutations, totals, reconciliation and restore."""

import asyncio
from dataclasses import replace

import pytest
from kungfu import Ok, Error

from cartflow.cart import Cart, CartLine, CartStore, ChangeKind, LineFlag
from cartflow.errors import (
    ContractViolation,
    InvalidQuantity,
    IssueKind,
    LineNotFound,
    ProductNotFound,
    StaleSnapshot,
    Superseded,
    Timeout,
    VariantNotFound,
    VariantRequired,
)


@pytest.fixture
def store(catalog, inventory, cart_config) -> CartStore:
    return CartStore(catalog, inventory, cart_id="cart-1", config=cart_config)


def _ok(result):
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise AssertionError(f"unexpected error: {e}")


def _err(result):
    match result:
        case Error(e):
            return e
        case Ok(value):
            raise AssertionError(f"unexpected success: {value}")


class TestAddItem:
    def test_add_captures_price_and_bumps_version(self, store):
        cart = _ok(store.add_item("tee", "tee-xl", 1))
        assert cart.version == 1
        assert cart.lines[0].unit_price_at_add == 2200

    def test_adding_same_key_merges(self, store):
        store.add_item("mug", None, 1)
        cart = _ok(store.add_item("mug", None, 2))
        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3
        assert cart.version == 2

    def test_lines_keep_insertion_order(self, store):
        store.add_item("mug")
        store.add_item("tee", "tee-s")
        store.add_item("apron")
        store.add_item("mug")
        assert [ln.product_id for ln in store.cart.lines] == ["mug", "tee", "apron"]

    def test_unknown_and_inactive_products(self, store):
        assert isinstance(_err(store.add_item("nope")), ProductNotFound)
        assert isinstance(_err(store.add_item("poster")), ProductNotFound)

    def test_variant_rules(self, store):
        assert isinstance(_err(store.add_item("tee")), VariantRequired)
        assert isinstance(_err(store.add_item("tee", "tee-xxl")), VariantNotFound)
        assert isinstance(_err(store.add_item("mug", "mug-red")), VariantNotFound)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_invalid_quantity(self, store, quantity):
        assert _err(store.add_item("mug", None, quantity)) == InvalidQuantity(quantity)

    def test_failed_add_leaves_version(self, store):
        store.add_item("nope")
        assert store.version == 0


class TestUpdateAndRemove:
    def test_update_sets_quantity(self, store):
        store.add_item("mug", None, 1)
        cart = _ok(store.update_quantity("mug", None, 4))
        assert cart.lines[0].quantity == 4

    def test_update_to_zero_removes(self, store):
        store.add_item("mug")
        cart = _ok(store.update_quantity("mug", None, 0))
        assert cart.is_empty

    def test_update_missing_line(self, store):
        assert _err(store.update_quantity("mug", None, 2)) == LineNotFound("mug", None)

    def test_update_negative(self, store):
        store.add_item("mug")
        assert _err(store.update_quantity("mug", None, -2)) == InvalidQuantity(-2)

    def test_remove_absent_is_noop(self, store):
        store.add_item("mug")
        before = store.cart
        cart = _ok(store.remove_item("apron"))
        assert cart is before
        assert store.version == 1

    def test_clear(self, store):
        store.add_item("mug")
        store.add_item("apron")
        cart = store.clear()
        assert cart.is_empty
        assert cart.version == 3


class TestTotals:
    PRICES = {
        ("tee", "tee-s"): 2000,
        ("tee", "tee-m"): 2000,
        ("tee", "tee-xl"): 2200,
        ("mug", None): 1200,
        ("apron", None): 3200,
    }

    @pytest.mark.parametrize(
        "ops",
        [
            [("add", "mug", None, 2), ("add", "tee", "tee-s", 1), ("update", "mug", None, 5)],
            [("add", "apron", None, 1), ("add", "apron", None, 1), ("remove", "apron", None, 0), ("add", "tee", "tee-xl", 3)],
            [
                ("add", "tee", "tee-m", 2),
                ("update", "tee", "tee-m", 0),
                ("add", "mug", None, 1),
                ("update", "mug", None, 3),
                ("add", "tee", "tee-xl", 1),
                ("remove", "nope", None, 0),
                ("add", "mug", None, 4),
            ],
        ],
    )
    def test_subtotal_follows_any_mutation_sequence(self, store, ops):
        quantities = {}
        for op, pid, vid, qty in ops:
            match op:
                case "add":
                    _ok(store.add_item(pid, vid, qty))
                    quantities[(pid, vid)] = quantities.get((pid, vid), 0) + qty
                case "update":
                    _ok(store.update_quantity(pid, vid, qty))
                    quantities[(pid, vid)] = qty
                case "remove":
                    _ok(store.remove_item(pid, vid))
                    quantities.pop((pid, vid), None)

            expected = sum(self.PRICES[key] * qty for key, qty in quantities.items())
            totals = store.compute_totals()
            assert totals.subtotal == expected
            assert totals.item_count == sum(quantities.values())

    def test_totals_use_price_at_add(self, store, catalog, products):
        store.add_item("tee", "tee-s", 2)
        store.add_item("mug", None, 1)
        tee = next(p for p in products if p.id == "tee")
        catalog.upsert(replace(tee, base_price=9999))

        totals = store.compute_totals()
        assert totals.subtotal == 2 * 2000 + 1200
        assert totals.item_count == 3

    def test_unavailable_lines_excluded(self, store, inventory):
        store.add_item("tee", "tee-s", 1)
        store.add_item("mug", None, 2)
        inventory.set_stock("tee", "tee-s", 0)

        asyncio.run(store.revalidate())

        totals = store.compute_totals()
        assert totals.subtotal == 2400
        assert totals.unavailable_count == 1
        assert len(store.cart.lines) == 2


class TestRevalidate:
    def test_clean_cart_keeps_version(self, store):
        store.add_item("mug", None, 2)
        recon = _ok(asyncio.run(store.revalidate()))
        assert recon.clean
        assert store.version == 1

    def test_over_quantity_is_clamped_and_flagged(self, store, inventory):
        store.add_item("mug", None, 8)
        inventory.set_stock("mug", None, 5)
        assert store.compute_totals().subtotal == 9600

        recon = _ok(asyncio.run(store.revalidate()))

        line = store.cart.lines[0]
        assert line.quantity == 5
        assert LineFlag.QUANTITY_REDUCED in line.flags
        assert recon.reduced[0].requested == 8
        assert recon.reduced[0].available == 5
        assert store.version == 2
        assert store.compute_totals().subtotal == 6000

    def test_zero_stock_flags_unavailable_without_touching_quantity(self, store, inventory):
        store.add_item("apron", None, 2)
        inventory.set_stock("apron", None, 0)

        recon = _ok(asyncio.run(store.revalidate()))

        line = store.cart.lines[0]
        assert line.quantity == 2
        assert not line.available
        assert recon.unavailable[0].kind is IssueKind.UNAVAILABLE

    def test_deactivated_product_flagged_not_deleted(self, store, catalog):
        store.add_item("mug")
        catalog.deactivate("mug")

        recon = _ok(asyncio.run(store.revalidate()))

        assert len(store.cart.lines) == 1
        assert not store.cart.lines[0].available
        assert recon.unavailable[0].reason == "no longer sold"

    def test_restock_clears_unavailable(self, store, inventory):
        store.add_item("apron")
        inventory.set_stock("apron", None, 0)
        asyncio.run(store.revalidate())
        inventory.set_stock("apron", None, 3)

        recon = _ok(asyncio.run(store.revalidate()))

        assert recon.clean
        assert store.cart.lines[0].available

    def test_quantity_reduced_sticky_until_acknowledged(self, store, inventory):
        store.add_item("mug", None, 8)
        inventory.set_stock("mug", None, 5)
        asyncio.run(store.revalidate())
        inventory.set_stock("mug", None, 50)

        asyncio.run(store.revalidate())
        assert LineFlag.QUANTITY_REDUCED in store.cart.lines[0].flags

        cart = _ok(store.acknowledge("mug", None))
        assert cart.lines[0].flags == frozenset()

    def test_update_quantity_clears_reduced_flag(self, store, inventory):
        store.add_item("mug", None, 8)
        inventory.set_stock("mug", None, 5)
        asyncio.run(store.revalidate())

        cart = _ok(store.update_quantity("mug", None, 4))
        assert cart.lines[0].flags == frozenset()

    def test_result_superseded_by_newer_mutation(self, catalog, cart_config):
        class SlowOracle:
            async def check_stock(self, product_id, variant_id):
                await asyncio.sleep(0.05)
                return Ok(catalog.get(product_id).stock_for(variant_id))

            async def commit_reservation(self, lines, *, key):
                raise NotImplementedError

            async def release(self, reservation):
                raise NotImplementedError

        store = CartStore(catalog, SlowOracle(), config=cart_config)
        store.add_item("mug", None, 20)

        async def scenario():
            pending = asyncio.create_task(store.revalidate())
            await asyncio.sleep(0.01)
            store.add_item("apron")
            return await pending

        err = _err(asyncio.run(scenario()))
        assert err == Superseded(1, 2)
        assert store.cart.lines[0].quantity == 20

    def test_oracle_timeout_surfaces(self, catalog, cart_config):
        class HangingOracle:
            async def check_stock(self, product_id, variant_id):
                await asyncio.sleep(5)

            async def commit_reservation(self, lines, *, key):
                raise NotImplementedError

            async def release(self, reservation):
                raise NotImplementedError

        config = cart_config.with_timeouts(inventory=0.01)
        store = CartStore(catalog, HangingOracle(), config=config)
        store.add_item("mug")

        err = _err(asyncio.run(store.revalidate()))
        assert isinstance(err, Timeout)
        assert store.cart.lines[0].flags == frozenset()

    def test_oracle_garbage_is_contract_violation(self, catalog, cart_config):
        class GarbageOracle:
            async def check_stock(self, product_id, variant_id):
                return 42

            async def commit_reservation(self, lines, *, key):
                raise NotImplementedError

            async def release(self, reservation):
                raise NotImplementedError

        store = CartStore(catalog, GarbageOracle(), config=cart_config)
        store.add_item("mug")

        assert isinstance(_err(asyncio.run(store.revalidate())), ContractViolation)


class TestRestore:
    def _snapshot(self, version: int) -> Cart:
        return Cart(id="cart-1", lines=(CartLine("mug", None, 3, 1200),), version=version)

    def test_restore_into_empty_store(self, store):
        cart = _ok(store.restore(self._snapshot(7)))
        assert cart.version == 7
        assert cart.lines[0].quantity == 3

    def test_older_snapshot_than_local_state_is_stale(self, store):
        store.add_item("apron")
        store.add_item("apron")
        assert _err(store.restore(self._snapshot(1))) == StaleSnapshot(1, 2)
        assert store.cart.lines[0].product_id == "apron"

    def test_force_restore_keeps_version_monotonic(self, store):
        store.add_item("apron")
        store.add_item("apron")
        cart = _ok(store.restore(self._snapshot(1), force=True))
        assert cart.version == 3
        assert cart.lines[0].product_id == "mug"

    def test_restore_into_emptied_store_not_stale(self, store):
        store.add_item("apron")
        store.clear()
        cart = _ok(store.restore(self._snapshot(1)))
        assert cart.version == 3


class TestSubscribe:
    def test_listener_receives_diffs(self, store):
        changes = []
        store.subscribe(changes.append)

        store.add_item("mug")
        store.update_quantity("mug", None, 3)
        store.remove_item("mug")

        assert [c.version for c in changes] == [1, 2, 3]
        assert [c.previous_version for c in changes] == [0, 1, 2]
        assert [c.changes[0].kind for c in changes] == [ChangeKind.ADDED, ChangeKind.UPDATED, ChangeKind.REMOVED]

    def test_unsubscribe(self, store):
        changes = []
        unsubscribe = store.subscribe(changes.append)
        store.add_item("mug")
        unsubscribe()
        store.add_item("mug")
        assert len(changes) == 1

    def test_failing_listener_does_not_break_mutation(self, store):
        def broken(change):
            raise RuntimeError("listener bug")

        seen = []
        store.subscribe(broken)
        store.subscribe(seen.append)

        assert _ok(store.add_item("mug")).version == 1
        assert len(seen) == 1

    def test_revalidate_flags_reported_as_flagged(self, store, inventory):
        store.add_item("apron")
        inventory.set_stock("apron", None, 0)
        changes = []
        store.subscribe(changes.append)

        asyncio.run(store.revalidate())

        assert changes[-1].reason == "revalidate"
        assert changes[-1].changes[0].kind is ChangeKind.FLAGGED
