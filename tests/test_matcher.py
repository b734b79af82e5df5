from types import SimpleNamespace

import pytest

from funnelbot.services.matcher import (
    contains_any,
    match_by_keywords,
    match_by_number_or_word,
    parse_keyword_list,
    plan_keywords,
)


def _plan(plan_id, name):
    return SimpleNamespace(id=plan_id, name=name)


class TestPlanKeywords:
    def test_drops_short_tokens(self):
        assert plan_keywords("Plan de Oro") == ["plan", "oro"]

    def test_empty_name(self):
        assert plan_keywords(None) == []


class TestParseKeywordList:
    def test_parses_json_array(self):
        assert parse_keyword_list('["Congreso", " vip "]') == ["congreso", "vip"]

    def test_accepts_list(self):
        assert parse_keyword_list(["A", ""]) == ["a"]

    @pytest.mark.parametrize("raw", ["not json", '{"a": 1}', None])
    def test_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            parse_keyword_list(raw)


class TestMatchByKeywords:
    def test_first_catalog_row_wins(self):
        plans = [_plan(1, "Plan Oro"), _plan(2, "Plan Plata")]
        # "plan" is a keyword of both
        match = match_by_keywords("quiero el plan plata", plans, lambda p: plan_keywords(p.name))
        assert match.id == 1

    def test_matches_substring(self):
        plans = [_plan(3, "Membresía Oro")]
        assert match_by_keywords("info del ORO porfa", plans, lambda p: plan_keywords(p.name)).id == 3

    def test_short_keywords_never_match(self):
        rows = [SimpleNamespace(id=1, keywords=["de", "la"])]
        assert match_by_keywords("de la casa", rows, lambda r: r.keywords) is None

    def test_empty_text(self):
        assert match_by_keywords("   ", [_plan(1, "Plan Oro")], lambda p: plan_keywords(p.name)) is None

    def test_malformed_row_skipped(self):
        rows = [
            SimpleNamespace(id=1, keywords="{broken"),
            SimpleNamespace(id=2, keywords='["congreso"]'),
        ]
        match = match_by_keywords("info del congreso", rows, lambda r: parse_keyword_list(r.keywords))
        assert match.id == 2


class TestMatchByNumberOrWord:
    def test_number_in_range(self):
        assert match_by_number_or_word("2", ["Yape", "Tarjeta"]) == 2

    def test_number_out_of_range(self):
        assert match_by_number_or_word("3", ["Yape", "Tarjeta"]) is None
        assert match_by_number_or_word("0", ["Yape", "Tarjeta"]) is None

    def test_max_number_without_words(self):
        assert match_by_number_or_word(" 4 ", max_number=4) == 4
        assert match_by_number_or_word("5", max_number=4) is None
        assert match_by_number_or_word("abc", max_number=4) is None

    def test_exact_word_before_containment(self):
        methods = ["Tarjeta de crédito", "Tarjeta"]
        assert match_by_number_or_word("tarjeta", methods) == 2

    def test_text_contained_in_word(self):
        assert match_by_number_or_word("transfer", ["Yape", "Transferencia"]) == 2

    def test_word_contained_in_text(self):
        assert match_by_number_or_word("pago con yape por favor", ["Yape", "Tarjeta"]) == 1

    def test_no_match(self):
        assert match_by_number_or_word("efectivo", ["Yape", "Tarjeta"]) is None


class TestContainsAny:
    def test_hit(self):
        assert contains_any("Quiero el PASE VIP", ("vip", "general")) is True

    def test_miss(self):
        assert contains_any("hola", ("vip", "general")) is False


class TestPaymentMethodReplies:
    METHODS = ["Yape", "Deposito", "Tarjeta"]

    @pytest.mark.parametrize("reply, expected", [("1", 1), ("YAPE", 1), ("dep", 2), ("tarjeta", 3), ("abc", None)])
    def test_index_or_name(self, reply, expected):
        assert match_by_number_or_word(reply, self.METHODS) == expected

    def test_repeatable(self):
        plans = [_plan(1, "Plan Oro"), _plan(2, "Plan Oro Plus")]
        results = {match_by_keywords("oro plus", plans, lambda p: plan_keywords(p.name)).id for _ in range(5)}
        assert results == {1}
