"""Tests for the acting identity swap."""

import pytest

from content import identity


class TestActingAs:
    def test_swaps_and_restores(self):
        before = identity.current_user_id()
        with identity.acting_as(before + 7) as acting:
            assert acting == before + 7
            assert identity.current_user_id() == before + 7
        assert identity.current_user_id() == before

    def test_restores_on_error(self):
        before = identity.current_user_id()
        with pytest.raises(RuntimeError):
            with identity.acting_as(before + 3):
                raise RuntimeError("insert failed")
        assert identity.current_user_id() == before

    def test_falsy_id_keeps_current(self):
        before = identity.current_user_id()
        with identity.acting_as(None) as acting:
            assert acting == before
        with identity.acting_as(0):
            assert identity.current_user_id() == before
