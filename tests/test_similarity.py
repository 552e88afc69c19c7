"""Tests for normalized token-overlap similarity."""

import pytest

from storyforge.similarity import join_text, normalize, overlap, strip_diacritics, tokens


class TestNormalize:
    def test_lowercases_and_strips_diacritics(self):
        assert normalize("Canción ÁRBOL") == "cancion arbol"

    def test_punctuation_becomes_whitespace(self):
        assert normalize("alta,  baja;modificación!") == "alta baja modificacion"

    def test_none_is_empty(self):
        assert normalize(None) == ""

    def test_strip_diacritics_keeps_base_letters(self):
        assert strip_diacritics("pingüino ñandú") == "pinguino nandu"


class TestTokens:
    def test_drops_short_tokens(self):
        assert tokens("el usuario de la app") == {"usuario", "app"}

    def test_is_a_set(self):
        assert tokens("factura factura FACTURA") == {"factura"}


class TestOverlap:
    """Properties of the shared-token ratio."""

    @pytest.mark.parametrize(
        "text",
        ["registrar cliente", "Consultar el saldo de la cuenta", "exportar"],
    )
    def test_identity(self, text):
        assert overlap(text, text) == 1.0

    @pytest.mark.parametrize(
        "a,b",
        [
            ("registrar cliente nuevo", "registrar proveedor"),
            ("consultar saldo", "consultar saldo y movimientos de cuenta"),
            ("uno dos tres", "cuatro cinco seis"),
        ],
    )
    def test_symmetry(self, a, b):
        assert overlap(a, b) == overlap(b, a)

    def test_empty_side_is_zero(self):
        assert overlap("", "registrar cliente") == 0.0
        assert overlap("registrar cliente", None) == 0.0

    def test_only_short_tokens_is_zero(self):
        assert overlap("a de la", "a de la") == 0.0

    def test_ratio_uses_larger_set(self):
        # 2 shared tokens, larger side has 4
        assert overlap("alta cliente", "alta cliente nuevo sistema") == 0.5

    def test_accents_do_not_matter(self):
        assert overlap("facturación electrónica", "facturacion electronica") == 1.0


class TestJoinText:
    def test_skips_none_and_empty(self):
        assert join_text("a", None, "", ["b", "", "c"]) == "a b c"
