"""Unit tests for artist name normalization."""

from __future__ import annotations

import pytest

from matcher.normalize import normalize, same_artist


class TestNormalize:
    def test_diacritics_and_case(self) -> None:
        assert normalize("Beyoncé") == normalize("beyonce") == "beyonce"

    def test_apostrophe_variants_collapse(self) -> None:
        assert normalize("Guns N’ Roses") == normalize("Guns N' Roses") == "guns n roses"

    def test_punctuation_runs_become_single_space(self) -> None:
        assert normalize("  AC/DC -- Live!! ") == "ac dc live"

    @pytest.mark.parametrize("value", [None, "", "   ", "!!!"])
    def test_empty_inputs(self, value) -> None:
        assert normalize(value) == ""

    @pytest.mark.parametrize("value", ["Sigur Rós", "Mötley Crüe", "P!nk", "Tyler, The Creator", "MØ"])
    def test_idempotent(self, value: str) -> None:
        once = normalize(value)
        assert normalize(once) == once

    def test_same_artist(self) -> None:
        assert same_artist("Sigur Rós", "sigur ros")
        assert not same_artist("Sigur Rós", "Sigur Ros Tribute")
        assert not same_artist("", "")
